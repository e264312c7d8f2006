"""
Upload module.

Plain multipart uploads (:class:`Uploader`) and two-phase signed uploads
(:class:`SigningUploader`) over a pluggable transport.
"""
from .uploader import Uploader
from .signing import SigningUploader, resolve_policy
from .cancellation import CancellationToken
from .transport import AiohttpTransport
from .models import FileHandle, FormPart, MultipartPayload, ProgressEvent, TransportError
from .protocols import TransportProtocol, TransportFactory

__all__ = [
    # Main classes
    'Uploader',
    'SigningUploader',
    'resolve_policy',
    'CancellationToken',
    'AiohttpTransport',

    # Models
    'FileHandle',
    'FormPart',
    'MultipartPayload',
    'ProgressEvent',
    'TransportError',

    # Protocols
    'TransportProtocol',
    'TransportFactory',
]
