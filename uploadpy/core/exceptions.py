"""
Custom exceptions for upload operations.

Transport failures never escape as raw aiohttp errors; they are shaped into
an error descriptor and raised as one of the classes below.
"""
from collections.abc import Mapping
from typing import Optional, Any


def _field(descriptor: Any, name: str) -> Any:
    """Read a field from an object or mapping descriptor."""
    if isinstance(descriptor, Mapping):
        return descriptor.get(name)
    return getattr(descriptor, name, None)


class UploadException(Exception):
    """Base exception for all uploadpy errors."""
    
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        """
        Initialize the exception.
        
        Args:
            message: Error message
            status: HTTP status code (if available)
        """
        self.status = status
        super().__init__(message)


class UploadError(UploadException):
    """Exception raised when the upload request fails."""
    
    def __init__(
        self,
        message: str,
        descriptor: Any = None,
        text_status: Optional[str] = None,
        status: Optional[int] = None
    ) -> None:
        """
        Initialize the exception.
        
        Args:
            message: Error message
            descriptor: Error descriptor produced by the transport
            text_status: Short error kind ('error', 'timeout', 'parsererror')
            status: HTTP status code (if available)
        """
        self.descriptor = descriptor
        self.text_status = text_status
        super().__init__(message, status)
    
    @property
    def error_thrown(self) -> Any:
        """Returns the error recorded on the descriptor."""
        return _field(self.descriptor, 'error_thrown')
    
    @classmethod
    def from_descriptor(cls, descriptor: Any, text_status: Optional[str] = None) -> 'UploadError':
        """Build an exception from a shaped transport error descriptor."""
        status = _field(descriptor, 'status')
        error_thrown = _field(descriptor, 'error_thrown')
        message = str(error_thrown) if error_thrown is not None else (text_status or 'error')
        if status is not None:
            message = f"HTTP {status}: {message}"
        exc = cls(message, descriptor=descriptor, text_status=text_status, status=status)
        if isinstance(error_thrown, BaseException):
            exc.__cause__ = error_thrown
        return exc


class SigningError(UploadError):
    """Exception raised when the signing request fails."""
    pass


class UploadAborted(UploadException):
    """Exception raised when an upload is aborted before completion."""
    pass
