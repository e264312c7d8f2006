"""
Protocol definitions for upload module.

Defines the transport interface the uploaders drive, so the aiohttp
implementation can be swapped out (in tests, for instance).
"""
from typing import Protocol, Any, Callable, Dict, Optional

from .models import ProgressEvent


class TransportProtocol(Protocol):
    """
    Protocol for a single HTTP request.

    Shaped after a browser XMLHttpRequest: open, set headers, attach
    callbacks, then send. Exactly one of ``on_load`` or ``on_error`` is
    called per request unless it is aborted.
    """

    on_progress: Optional[Callable[[ProgressEvent], None]]
    on_load: Optional[Callable[[Any], None]]
    on_error: Optional[Callable[[Any, Optional[str], Any], None]]

    def open(self, method: str, url: str) -> None:
        """Set the request method and target url."""
        ...

    def set_request_header(self, name: str, value: str) -> None:
        """Set a request header."""
        ...

    async def send(self, data: Any = None, params: Optional[Dict[str, Any]] = None) -> None:
        """
        Perform the request.

        Args:
            data: Request body (MultipartPayload, str, bytes or None)
            params: Optional query string parameters
        """
        ...

    def abort(self) -> None:
        """Abort the request (best effort)."""
        ...


TransportFactory = Callable[[], TransportProtocol]
