"""
uploadpy - Async multipart and signed (direct-to-storage) file uploads.

Usage:
    >>> from uploadpy import Uploader, FileHandle
    >>> 
    >>> async with Uploader(url="https://example.com/upload") as uploader:
    ...     uploader.on('progress', lambda e: print(f"{e.percent:.0f}%"))
    ...     await uploader.upload([FileHandle("a.txt", b"a"), FileHandle("b.txt", b"b")])
"""
import logging

from .core.config import (
    UploaderConfig,
    SigningConfig,
    ProxyConfig,
    SSLConfig,
    TimeoutConfig
)
from .core.events import EventEmitter
from .core.exceptions import (
    UploadException,
    UploadError,
    SigningError,
    UploadAborted
)
from .core.upload import (
    Uploader,
    SigningUploader,
    resolve_policy,
    FileHandle,
    MultipartPayload,
    ProgressEvent,
    TransportError,
    AiohttpTransport
)

__version__ = '1.0.0'


def setup_logging(level=logging.INFO):
    """
    Configure logging for uploadpy modules.
    
    Args:
        level: Logging level (default: logging.INFO)
    """
    loggers = [
        'uploadpy',
        'uploadpy.upload',
        'uploadpy.signing',
        'uploadpy.transport',
        'uploadpy.cli',
    ]
    
    for logger_name in loggers:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        logger.propagate = True


__all__ = [
    'Uploader',
    'SigningUploader',
    'resolve_policy',
    'FileHandle',
    'MultipartPayload',
    'ProgressEvent',
    'TransportError',
    'AiohttpTransport',
    'EventEmitter',
    'UploaderConfig',
    'SigningConfig',
    'ProxyConfig',
    'SSLConfig',
    'TimeoutConfig',
    'UploadException',
    'UploadError',
    'SigningError',
    'UploadAborted',
    'setup_logging',
]
