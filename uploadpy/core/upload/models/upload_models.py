"""
Data models for upload module.

Uses dataclasses for the per-upload values passed between the uploader,
the transport and event listeners.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Iterator, Union
from pathlib import Path
import mimetypes

import aiofiles
import aiohttp


DEFAULT_CONTENT_TYPE = 'application/octet-stream'


def form_value(value: Any) -> Union[str, bytes]:
    """
    Encode a field value the way it is written into a form or query.

    Booleans become ``true``/``false`` and None becomes ``null``, matching
    the JSON the signing endpoint returned. Bytes are kept as bytes.
    """
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return 'null'
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return str(value)


@dataclass
class FileHandle:
    """
    A file to be uploaded.

    Attributes:
        name: File name sent as the part's filename
        content: Binary content
        type: MIME type (guessed from the name when empty)
        size: Size in bytes (defaults to ``len(content)``)

    Example:
        >>> handle = FileHandle("notes.txt", b"hello")
        >>> handle.type, handle.size
        ('text/plain', 5)
    """
    name: str
    content: bytes = b''
    type: str = ''
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.content)
        if not self.type:
            self.type = mimetypes.guess_type(self.name)[0] or DEFAULT_CONTENT_TYPE

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        content_type: Optional[str] = None
    ) -> 'FileHandle':
        """Create a handle from in-memory bytes."""
        return cls(name=name, content=data, type=content_type or '')

    @classmethod
    async def from_path(
        cls,
        file_path: Union[str, Path],
        content_type: Optional[str] = None
    ) -> 'FileHandle':
        """
        Read a file from disk into a handle.

        Args:
            file_path: Path to the file
            content_type: Optional MIME type override

        Returns:
            FileHandle with the file's name, type, size and content

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If path is not a regular file
        """
        path = Path(file_path) if isinstance(file_path, str) else file_path

        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        if not path.is_file():
            raise ValueError(f"Path is not a file: {path}")

        async with aiofiles.open(path, 'rb') as f:
            data = await f.read()

        return cls(name=path.name, content=data, type=content_type or '')

    def __repr__(self) -> str:
        return f"FileHandle(name={self.name!r}, type={self.type!r}, size={self.size})"


@dataclass(frozen=True)
class FormPart:
    """A single named part of a multipart payload."""
    name: str
    value: Any

    @property
    def is_file(self) -> bool:
        """Returns True if the part carries a file."""
        return isinstance(self.value, FileHandle)


class MultipartPayload:
    """
    Ordered set of named form parts.

    Behaves like a browser ``FormData``: the same name may appear several
    times and insertion order is kept.
    """

    def __init__(self, parts: Optional[List[FormPart]] = None):
        self._parts: List[FormPart] = list(parts or [])

    def append(self, name: str, value: Any) -> 'MultipartPayload':
        """Append a part, keeping any existing parts with the same name."""
        self._parts.append(FormPart(name, value))
        return self

    def keys(self) -> List[str]:
        """Returns part names in order (repeated names included)."""
        return [part.name for part in self._parts]

    def get(self, name: str, default: Any = None) -> Any:
        """Returns the first value stored under name."""
        for part in self._parts:
            if part.name == name:
                return part.value
        return default

    def getall(self, name: str) -> List[Any]:
        """Returns every value stored under name, in order."""
        return [part.value for part in self._parts if part.name == name]

    @property
    def parts(self) -> List[FormPart]:
        return list(self._parts)

    def __iter__(self) -> Iterator[FormPart]:
        return iter(self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    def __contains__(self, name: object) -> bool:
        return any(part.name == name for part in self._parts)

    def __repr__(self) -> str:
        return f"MultipartPayload({self.keys()!r})"

    def to_multipart(self) -> aiohttp.MultipartWriter:
        """
        Build the ``multipart/form-data`` body writer.

        Files become parts with a filename and their own content type;
        bytes values are sent as binary parts, every other value as text
        (see :func:`form_value`).
        """
        writer = aiohttp.MultipartWriter('form-data')
        for part in self._parts:
            if part.is_file:
                handle = part.value
                payload = writer.append(handle.content, {'Content-Type': handle.type})
                payload.set_content_disposition('form-data', name=part.name, filename=handle.name)
            else:
                payload = writer.append(form_value(part.value))
                payload.set_content_disposition('form-data', name=part.name)
        return writer


@dataclass
class ProgressEvent:
    """
    Upload progress information.

    Attributes:
        loaded: Bytes sent so far
        total: Total body size in bytes
        percent: Set by ``Uploader.did_progress`` before listeners run
    """
    loaded: int
    total: int
    percent: Optional[float] = None


@dataclass
class TransportError:
    """
    Error descriptor delivered by a transport on failure.

    Attributes:
        status: HTTP status code, None for network-level failures
        text_status: Short error kind ('error', 'timeout', 'parsererror')
        body: Decoded response body, if any
        headers: Response headers, if any
        error_thrown: The underlying error; always set once the uploader
            has shaped the descriptor
    """
    status: Optional[int] = None
    text_status: str = 'error'
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    error_thrown: Any = None
