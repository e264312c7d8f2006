"""
Signed uploads.

Two-phase upload for pre-authorized (direct-to-object-storage) uploads:
request a signed policy from the application's signing endpoint, then post
the file and the policy fields straight to the storage endpoint.
"""
import asyncio
import json
from collections.abc import Mapping, MutableMapping
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from ..config import SigningConfig
from ..events import EventEmitter
from ..exceptions import SigningError
from ..logging import get_logger
from .cancellation import CancellationToken
from .models import FileHandle, MultipartPayload, ProgressEvent, TransportError
from .protocols import TransportFactory
from .uploader import Uploader

logger = get_logger('uploadpy.signing')


def resolve_policy(policy: MutableMapping) -> Tuple[str, MutableMapping]:
    """
    Pick the upload url from a signing response.

    In order: an explicit ``endpoint`` is used verbatim; a ``region``
    selects the regional S3 url for ``bucket``; otherwise the default
    region url for ``bucket`` is used. The selecting key is removed from
    the policy, ``bucket`` never is.

    Args:
        policy: Parsed signing response (modified in place)

    Returns:
        Tuple of (upload url, remaining policy fields)

    Example:
        >>> resolve_policy({'region': 'eu-west-1', 'bucket': 'b'})
        ('https://s3-eu-west-1.amazonaws.com/b', {'bucket': 'b'})
    """
    if policy.get('endpoint'):
        url = policy.pop('endpoint')
    elif policy.get('region'):
        url = f"https://s3-{policy['region']}.amazonaws.com/{policy.get('bucket')}"
        del policy['region']
    else:
        if not policy.get('bucket'):
            logger.warning("Signing response has no endpoint, region or bucket")
        url = f"https://{policy.get('bucket')}.s3.amazonaws.com"

    return url, policy


class SigningUploader:
    """
    Requests a signed upload policy, then uploads to the url it selects.

    Delegates payload construction and the upload request to an inner
    :class:`Uploader` that publishes on this instance's emitter.

    Events (in addition to the Uploader ones):
        did_sign(response): the signing request succeeded
        did_error_on_sign(): the signing request failed (did_error follows)

    Example:
        >>> uploader = SigningUploader(signing_url='https://app.example/sign')
        >>> response = await uploader.upload(FileHandle("a.png", data))
    """

    def __init__(
        self,
        config: Optional[SigningConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs
    ):
        """
        Initialize signing uploader.

        Args:
            config: Signing configuration (built from kwargs if omitted)
            transport_factory: Callable returning a fresh transport per
                request (defaults to aiohttp)
            session: Optional shared aiohttp session
            **kwargs: SigningConfig fields, used when config is omitted
        """
        self._config = config or SigningConfig(**kwargs)
        self._event_emitter = EventEmitter('uploadpy.signing.events')
        self._uploader = Uploader(
            self._config,
            transport_factory=transport_factory,
            session=session,
            event_emitter=self._event_emitter
        )
        self.is_signing = False

    async def __aenter__(self) -> 'SigningUploader':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Release the inner uploader's session."""
        await self._uploader.close()

    @property
    def config(self) -> SigningConfig:
        return self._config

    @property
    def signing_url(self) -> str:
        return self._config.signing_url

    @property
    def signing_method(self) -> str:
        return self._config.signing_method

    @property
    def is_uploading(self) -> bool:
        return self._uploader.is_uploading

    @is_uploading.setter
    def is_uploading(self, value: bool):
        self._uploader.is_uploading = value

    # Events

    def on(self, event: str, callback: Callable) -> 'SigningUploader':
        """Register an event handler."""
        self._event_emitter.on(event, callback)
        return self

    def once(self, event: str, callback: Callable) -> 'SigningUploader':
        """Register a handler that runs at most once."""
        self._event_emitter.once(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'SigningUploader':
        """Remove an event handler."""
        self._event_emitter.off(event, callback)
        return self

    def emit(self, event: str, *args, **kwargs):
        """Emit an event."""
        self._event_emitter.emit(event, *args, **kwargs)

    # Delegated to the inner uploader

    def create_form_data(self, files: Any, extra: Optional[Mapping] = None) -> MultipartPayload:
        return self._uploader.create_form_data(files, extra)

    def to_namespaced_param(self, name: str) -> str:
        return self._uploader.to_namespaced_param(name)

    async def ajax(
        self,
        url: str,
        data: Any = None,
        method: Optional[str] = None,
        token: Optional[CancellationToken] = None
    ) -> Any:
        return await self._uploader.ajax(url, data, method, token=token)

    def did_upload(self, data: Any) -> Any:
        return self._uploader.did_upload(data)

    def did_error(self, err: Any, text_status: Optional[str] = None, error_thrown: Any = None) -> Any:
        return self._uploader.did_error(err, text_status, error_thrown)

    def did_progress(self, event: ProgressEvent) -> None:
        self._uploader.did_progress(event)

    def abort(self) -> None:
        """Abort the upload request; a signing request in flight completes."""
        self._uploader.abort()

    # Signing

    def upload(self, file: FileHandle, extra: Optional[MutableMapping] = None) -> 'asyncio.Task':
        """
        Request a signed upload policy, then upload file and policy fields.

        Must be called with a running event loop. A signing failure is
        raised as is and no upload request is made.

        Args:
            file: File to upload
            extra: Extra data sent to the signing endpoint

        Returns:
            Task resolving to the storage endpoint's response body

        Raises (when awaited):
            SigningError: If the signing request fails
            UploadError: If the upload request fails
            UploadAborted: If abort() is called before completion
        """
        return self._uploader.start_operation(
            lambda token: self._sign_and_upload(file, extra, token)
        )

    async def _sign_and_upload(
        self,
        file: FileHandle,
        extra: Optional[MutableMapping],
        token: CancellationToken
    ) -> Any:
        policy = await self.sign(file, extra)

        self.is_uploading = True
        url, policy = resolve_policy(policy)
        logger.info(f"Uploading {file.name} to {url}")

        return await self.ajax(url, self.create_form_data(file, policy), token=token)

    async def sign(self, file: FileHandle, extra: Optional[MutableMapping] = None) -> Dict[str, Any]:
        """
        Request a signed upload policy.

        ``name``, ``type`` and ``size`` of the file are written into extra
        (the caller's mapping is modified). A GET request sends extra as
        query parameters, any other method as a JSON body.

        Args:
            file: File to upload
            extra: Extra data sent to the signing endpoint

        Returns:
            Parsed signing response

        Raises:
            SigningError: If the signing request fails
        """
        if extra is None:
            extra = {}

        extra['name'] = file.name
        extra['type'] = file.type
        extra['size'] = file.size

        url = self.signing_url
        method = self.signing_method
        transport = self._uploader.create_transport()
        transport.open(method, url)

        if method.lower() == 'get':
            body, params = None, dict(extra)
        else:
            body, params = json.dumps(extra), None
            transport.set_request_header('Content-Type', 'application/json')

        for name, value in self._config.signing_headers.items():
            transport.set_request_header(name, value)

        self.is_signing = True
        logger.info(f"Requesting upload policy for {file.name} from {url}")

        deferred = asyncio.get_running_loop().create_future()

        def on_load(response):
            try:
                policy = self._parse_policy(response)
            except ValueError as e:
                on_error(TransportError(text_status='parsererror', body=response), 'parsererror', e)
                return
            result = self.did_sign(policy)
            if not deferred.done():
                deferred.set_result(result)

        def on_error(err, text_status=None, error_thrown=None):
            shaped = self.did_error_on_sign(err, text_status, error_thrown)
            if not deferred.done():
                deferred.set_exception(SigningError.from_descriptor(shaped, text_status))

        transport.on_load = on_load
        transport.on_error = on_error

        try:
            await transport.send(body, params=params)
        except Exception as e:
            logger.error(f"Signing transport failed before completing: {e}")
            on_error(TransportError(text_status='error'), 'error', e)
        return await deferred

    @staticmethod
    def _parse_policy(response: Any) -> Dict[str, Any]:
        """Returns the response as a dict, decoding JSON text if needed."""
        if isinstance(response, (str, bytes)):
            response = json.loads(response)
        if not isinstance(response, dict):
            raise ValueError(f"Signing response is not a JSON object: {response!r}")
        return response

    def did_error_on_sign(self, err: Any, text_status: Optional[str] = None, error_thrown: Any = None) -> Any:
        """Set is_signing to False, emit did_error_on_sign, then did_error."""
        self.is_signing = False
        logger.warning(f"Signing failed: {text_status} {error_thrown}")
        self.emit('did_error_on_sign')
        self.did_error(err, text_status, error_thrown)
        return err

    def did_sign(self, response: Any) -> Any:
        """Set is_signing to False, emit did_sign and return response."""
        self.is_signing = False
        self.emit('did_sign', response)
        return response
