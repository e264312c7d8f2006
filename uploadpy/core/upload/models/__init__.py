"""Data models for upload module."""
from .upload_models import (
    FileHandle,
    FormPart,
    form_value,
    MultipartPayload,
    ProgressEvent,
    TransportError,
)

__all__ = [
    'FileHandle',
    'FormPart',
    'form_value',
    'MultipartPayload',
    'ProgressEvent',
    'TransportError',
]
