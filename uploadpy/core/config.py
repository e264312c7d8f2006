"""
Uploader configuration module.

Dataclass based configuration for the plain and signing uploaders.
Open for extension through custom configurations.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import ssl


@dataclass
class ProxyConfig:
    """
    Proxy configuration.

    Supports HTTP, HTTPS, and SOCKS proxies.
    """
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def to_aiohttp_proxy(self) -> Optional[str]:
        """Convert to aiohttp proxy format."""
        if not self.url:
            return None

        if self.username and self.password:
            if '://' in self.url:
                protocol, rest = self.url.split('://', 1)
                return f"{protocol}://{self.username}:{self.password}@{rest}"

        return self.url


@dataclass
class SSLConfig:
    """SSL/TLS configuration."""
    verify: bool = True
    ca_file: Optional[str] = None
    check_hostname: bool = True

    def create_ssl_context(self):
        """Create SSL context from configuration."""
        if not self.verify:
            return False  # Disable SSL verification

        context = ssl.create_default_context()

        if self.ca_file:
            context.load_verify_locations(self.ca_file)

        context.check_hostname = self.check_hostname

        return context


@dataclass
class TimeoutConfig:
    """
    Timeout configuration.

    ``total`` defaults to None: a stalled upload is only bounded by the
    socket timeouts.
    """
    total: Optional[float] = None
    connect: float = 30.0
    sock_read: Optional[float] = None
    sock_connect: float = 30.0

    def to_aiohttp_timeout(self):
        """Convert to aiohttp ClientTimeout."""
        import aiohttp
        return aiohttp.ClientTimeout(
            total=self.total,
            connect=self.connect,
            sock_read=self.sock_read,
            sock_connect=self.sock_connect
        )


@dataclass
class UploaderConfig:
    """
    Configuration for :class:`~uploadpy.core.upload.Uploader`.

    Attributes:
        url: Target url to upload to
        method: Request method for the upload, POST by default
        param_namespace: Namespace wrapped around the file param and every
            extra data param, e.g. ``upload[caption]``
        param_name: Parameter name for the file(s) to be uploaded
        headers: Headers applied to every upload request
    """
    url: Optional[str] = None
    method: str = 'POST'
    param_namespace: Optional[str] = None
    param_name: str = 'file'
    headers: Dict[str, str] = field(default_factory=dict)

    # Sub-configurations
    proxy: Optional[ProxyConfig] = None
    ssl: SSLConfig = field(default_factory=SSLConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)

    user_agent: str = 'uploadpy/1.0.0'

    # Bytes per body chunk; progress is reported once per chunk
    chunk_size: int = 64 * 1024

    limit: int = 100
    limit_per_host: int = 10

    @classmethod
    def default(cls) -> 'UploaderConfig':
        """Create default configuration."""
        return cls()

    @classmethod
    def with_proxy(cls, proxy_url: str, **kwargs) -> 'UploaderConfig':
        """Create configuration with proxy."""
        return cls(
            proxy=ProxyConfig(url=proxy_url),
            **kwargs
        )

    @classmethod
    def insecure(cls, **kwargs) -> 'UploaderConfig':
        """Create configuration with SSL verification disabled."""
        return cls(
            ssl=SSLConfig(verify=False, check_hostname=False),
            **kwargs
        )

    def get_proxy(self) -> Optional[str]:
        """Get proxy url in aiohttp format."""
        return self.proxy.to_aiohttp_proxy() if self.proxy else None

    def get_connector_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp TCPConnector."""
        return {
            'limit': self.limit,
            'limit_per_host': self.limit_per_host,
            'ssl': self.ssl.create_ssl_context(),
        }

    def get_session_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp ClientSession."""
        return {
            'headers': {'User-Agent': self.user_agent},
            'timeout': self.timeout.to_aiohttp_timeout(),
        }


@dataclass
class SigningConfig(UploaderConfig):
    """
    Configuration for :class:`~uploadpy.core.upload.SigningUploader`.

    Attributes:
        signing_url: Target url used to request a signed upload policy
        signing_method: Request method for signing, GET by default
        signing_headers: Headers applied to the signing request
    """
    signing_url: str = '/sign'
    signing_method: str = 'GET'
    signing_headers: Dict[str, str] = field(default_factory=dict)
