"""
aiohttp transport.

Performs one HTTP request and reports its outcome through callbacks, the
way a browser XMLHttpRequest does.
"""
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple
import asyncio
import json
import time
import aiohttp

from ..logging import get_logger
from .models import MultipartPayload, ProgressEvent, TransportError, form_value


class _BufferWriter:
    """Collects the bytes an aiohttp payload writes."""

    def __init__(self):
        self.buffer = bytearray()

    async def write(self, data: bytes) -> None:
        self.buffer.extend(data)


class AiohttpTransport:
    """
    Sends a single request over a shared aiohttp session.

    Responsibilities:
    - Encode the body (multipart, JSON string, bytes)
    - Stream it in chunks, reporting upload progress
    - Translate the response into ``on_load`` / ``on_error``
    - Cancel the in-flight request on ``abort()``
    """

    DEFAULT_CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        session: aiohttp.ClientSession,
        proxy: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        """
        Initialize transport.

        Args:
            session: Session the request is sent with (not closed here)
            proxy: Optional proxy url
            chunk_size: Bytes per body chunk
        """
        self._session = session
        self._proxy = proxy
        self._chunk_size = chunk_size
        self._method: Optional[str] = None
        self._url: Optional[str] = None
        self._headers: Dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None
        self._aborted = False
        self._logger = get_logger('uploadpy.transport')

        self.on_progress: Optional[Callable[[ProgressEvent], None]] = None
        self.on_load: Optional[Callable[[Any], None]] = None
        self.on_error: Optional[Callable[[Any, Optional[str], Any], None]] = None

    @property
    def aborted(self) -> bool:
        """Returns True if abort() was called."""
        return self._aborted

    @property
    def headers(self) -> Dict[str, str]:
        """Returns a copy of the request headers set so far."""
        return dict(self._headers)

    def open(self, method: str, url: str) -> None:
        """Set the request method and target url."""
        self._method = method.upper()
        self._url = url

    def set_request_header(self, name: str, value: str) -> None:
        """Set a request header."""
        self._headers[name] = value

    def abort(self) -> None:
        """Cancel the in-flight request; no callback fires afterwards."""
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._logger.debug(f"Aborting {self._method} {self._url}")
            self._task.cancel()

    async def send(self, data: Any = None, params: Optional[Dict[str, Any]] = None) -> None:
        """
        Perform the request.

        Args:
            data: MultipartPayload, str, bytes or None
            params: Optional query string parameters

        Raises:
            RuntimeError: If open() was not called
        """
        if self._url is None:
            raise RuntimeError("open() must be called before send()")

        if self._aborted:
            self._logger.debug(f"Request to {self._url} aborted before send")
            return

        self._task = asyncio.ensure_future(self._perform(data, params))
        try:
            outcome = await self._task
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            self._logger.debug(f"Request to {self._url} aborted")
            return
        finally:
            self._task = None

        kind, args = outcome
        if kind == 'load':
            if self.on_load:
                self.on_load(*args)
        elif self.on_error:
            self.on_error(*args)

    async def _perform(self, data: Any, params: Optional[Dict[str, Any]]) -> Tuple[str, tuple]:
        """Run the request and return ('load', args) or ('error', args)."""
        headers = dict(self._headers)
        body, body_headers = await self._prepare_body(data)
        headers.update(body_headers)

        start = time.time()
        self._logger.debug(f"{self._method} {self._url}")

        try:
            async with self._session.request(
                self._method,
                self._url,
                data=body,
                params=self._encode_params(params),
                headers=headers,
                proxy=self._proxy
            ) as response:
                payload = await self._read_response(response)
                elapsed = time.time() - start

                if 200 <= response.status < 300:
                    self._logger.debug(f"{self._method} {self._url} -> {response.status} in {elapsed:.2f}s")
                    return 'load', (payload,)

                self._logger.warning(f"{self._method} {self._url} -> {response.status} {response.reason}")
                err = TransportError(
                    status=response.status,
                    text_status='error',
                    body=payload,
                    headers=dict(response.headers)
                )
                return 'error', (err, 'error', response.reason)
        except asyncio.TimeoutError as e:
            elapsed = time.time() - start
            self._logger.error(f"{self._method} {self._url} timed out after {elapsed:.2f}s")
            return 'error', (TransportError(text_status='timeout'), 'timeout', e)
        except aiohttp.ClientError as e:
            self._logger.error(f"{self._method} {self._url} failed: {e}")
            return 'error', (TransportError(text_status='error'), 'error', e)

    async def _prepare_body(self, data: Any) -> Tuple[Any, Dict[str, str]]:
        """Encode data into a streamed body plus the headers it requires."""
        if data is None:
            return None, {}

        headers: Dict[str, str] = {}
        if isinstance(data, MultipartPayload):
            writer = data.to_multipart()
            buffer = _BufferWriter()
            await writer.write(buffer)
            content = bytes(buffer.buffer)
            # The boundary lives in the content type, so it always wins
            headers['Content-Type'] = writer.content_type
        elif isinstance(data, str):
            content = data.encode('utf-8')
        elif isinstance(data, (bytes, bytearray)):
            content = bytes(data)
        else:
            raise TypeError(f"Unsupported request body: {type(data).__name__}")

        headers['Content-Length'] = str(len(content))
        return self._stream(content), headers

    async def _stream(self, content: bytes) -> AsyncIterator[bytes]:
        """Yield content in chunks, reporting progress after each one."""
        total = len(content)
        loaded = 0
        for start in range(0, total, self._chunk_size):
            chunk = content[start:start + self._chunk_size]
            yield chunk
            loaded += len(chunk)
            if self.on_progress:
                self.on_progress(ProgressEvent(loaded=loaded, total=total))

    @staticmethod
    def _encode_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
        """Stringify query parameters; aiohttp rejects None and bool values."""
        if not params:
            return None
        encoded = {}
        for key, value in params.items():
            # An absent value is sent empty in a query string
            value = '' if value is None else form_value(value)
            encoded[key] = value.decode('utf-8') if isinstance(value, bytes) else value
        return encoded

    @staticmethod
    async def _read_response(response: aiohttp.ClientResponse) -> Any:
        """Decode the body: JSON when declared as JSON, text otherwise."""
        text = await response.text()
        content_type = response.content_type or ''
        if content_type == 'application/json' or content_type.endswith('+json'):
            try:
                return json.loads(text) if text else None
            except ValueError:
                return text
        return text
