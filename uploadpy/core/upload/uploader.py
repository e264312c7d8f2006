"""
Uploader.

Builds the multipart payload for one or more files and drives a single
HTTP request through to completion, reporting progress, completion, error
and abort as events.
"""
import asyncio
import math
from collections.abc import Mapping, MutableMapping
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from ..config import UploaderConfig
from ..events import EventEmitter
from ..exceptions import UploadAborted, UploadError, UploadException
from ..logging import get_logger
from .cancellation import CancellationToken
from .models import MultipartPayload, ProgressEvent, TransportError
from .protocols import TransportFactory, TransportProtocol
from .transport import AiohttpTransport

logger = get_logger('uploadpy.upload')

# Values that are never treated as an error descriptor object
_SCALARS = (str, bytes, int, float, bool)


class Uploader:
    """
    Uploads file(s) and extra data as ``multipart/form-data``.

    Events:
        progress(event): upload progress, ``event.percent`` already set
        did_upload(response): the upload succeeded
        did_error(err, text_status, error_thrown): the upload failed
        is_aborting(): ``abort()`` was called

    Example:
        >>> async with Uploader(url='https://example.com/upload') as uploader:
        ...     uploader.on('progress', lambda e: print(f"{e.percent:.0f}%"))
        ...     response = await uploader.upload(FileHandle("a.txt", b"hi"))
    """

    def __init__(
        self,
        config: Optional[UploaderConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        session: Optional[aiohttp.ClientSession] = None,
        event_emitter: Optional[EventEmitter] = None,
        **kwargs
    ):
        """
        Initialize uploader.

        Args:
            config: Uploader configuration (built from kwargs if omitted)
            transport_factory: Callable returning a fresh transport per
                request (defaults to aiohttp)
            session: Optional shared aiohttp session
            event_emitter: Emitter to publish events on (one is created
                if omitted)
            **kwargs: UploaderConfig fields, used when config is omitted
        """
        self._config = config or UploaderConfig(**kwargs)
        self._transport_factory = transport_factory
        self._session = session
        self._owns_session = False
        self._event_emitter = event_emitter or EventEmitter('uploadpy.upload.events')
        self.is_uploading = False

    async def __aenter__(self) -> 'Uploader':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close session if we own it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None
            self._owns_session = False

    @property
    def config(self) -> UploaderConfig:
        return self._config

    @property
    def url(self) -> Optional[str]:
        return self._config.url

    @property
    def method(self) -> str:
        return self._config.method

    @property
    def param_name(self) -> str:
        return self._config.param_name

    @property
    def param_namespace(self) -> Optional[str]:
        return self._config.param_namespace

    # Events

    def on(self, event: str, callback: Callable) -> 'Uploader':
        """Register an event handler."""
        self._event_emitter.on(event, callback)
        return self

    def once(self, event: str, callback: Callable) -> 'Uploader':
        """Register a handler that runs at most once."""
        self._event_emitter.once(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'Uploader':
        """Remove an event handler."""
        self._event_emitter.off(event, callback)
        return self

    def emit(self, event: str, *args, **kwargs):
        """Emit an event."""
        self._event_emitter.emit(event, *args, **kwargs)

    # Upload

    def upload(self, files: Any, extra: Optional[Mapping] = None) -> 'asyncio.Task':
        """
        Start upload of file(s) and any extra data.

        Must be called with a running event loop.

        Args:
            files: One FileHandle or a list/tuple of them
            extra: Extra data to be sent with the upload

        Returns:
            Task resolving to the response body

        Raises (when awaited):
            UploadError: If the request fails
            UploadAborted: If abort() is called before completion
        """
        data = self.create_form_data(files, extra)
        url = self.url
        method = self.method

        self.is_uploading = True
        logger.info(f"Starting upload to {url} ({len(data)} parts)")

        return self.start_operation(
            lambda token: self.ajax(url, data, method, token=token)
        )

    def start_operation(
        self,
        operation: Callable[[CancellationToken], Awaitable[Any]]
    ) -> 'asyncio.Task':
        """
        Schedule an upload operation bound to a fresh cancellation token.

        The token listens for ``is_aborting`` before the operation runs, so
        an abort issued right after the call is never lost.
        """
        token = CancellationToken()
        self._event_emitter.once('is_aborting', token.cancel)

        task = asyncio.ensure_future(operation(token))
        task.add_done_callback(lambda _: self._event_emitter.off('is_aborting', token.cancel))
        return task

    def create_form_data(self, files: Any, extra: Optional[Mapping] = None) -> MultipartPayload:
        """
        Create the payload with the file(s) and any extra data.

        Args:
            files: One FileHandle or a list/tuple of them
            extra: Extra data to be sent with the upload

        Returns:
            MultipartPayload with the supplied file(s) and extra data
        """
        form_data = MultipartPayload()

        for key, value in (extra or {}).items():
            form_data.append(self.to_namespaced_param(key), value)

        if isinstance(files, (list, tuple)):
            # The same "[]" suffixed key is reused for every file
            param_key = f"{self.to_namespaced_param(self.param_name)}[]"
            for file in files:
                form_data.append(param_key, file)
        else:
            form_data.append(self.to_namespaced_param(self.param_name), files)

        return form_data

    def to_namespaced_param(self, name: str) -> str:
        """Returns the param name namespaced if a namespace exists."""
        if self.param_namespace:
            return f"{self.param_namespace}[{name}]"
        return name

    # Transport

    def create_transport(self) -> TransportProtocol:
        """Returns a new transport for one request."""
        if self._transport_factory is not None:
            return self._transport_factory()
        return AiohttpTransport(
            self._get_session(),
            proxy=self._config.get_proxy(),
            chunk_size=self._config.chunk_size
        )

    def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(**self._config.get_connector_kwargs()),
                **self._config.get_session_kwargs()
            )
            self._owns_session = True
        return self._session

    async def ajax(
        self,
        url: str,
        data: Any = None,
        method: Optional[str] = None,
        token: Optional[CancellationToken] = None
    ) -> Any:
        """
        Start a request to url sending data with the given method.

        Args:
            url: Target url for the request
            data: Request body
            method: Request method (defaults to the configured one)
            token: Cancellation token of the calling upload

        Returns:
            Response body
        """
        transport = self.create_transport()
        transport.open(method or self.method, url)

        for name, value in self._config.headers.items():
            transport.set_request_header(name, value)

        return await self.ajax_promise(transport, data, token)

    async def ajax_promise(
        self,
        transport: TransportProtocol,
        data: Any,
        token: Optional[CancellationToken] = None
    ) -> Any:
        """
        Wire transport callbacks to uploader events and send data.

        Args:
            transport: Opened transport
            data: Request body
            token: Cancellation token; a one-shot ``is_aborting`` listener
                is registered when none is given

        Returns:
            Response body once the transport completes
        """
        if token is None:
            token = CancellationToken()
            self._event_emitter.once('is_aborting', token.cancel)
            try:
                return await self.ajax_promise(transport, data, token)
            finally:
                self._event_emitter.off('is_aborting', token.cancel)

        deferred = asyncio.get_running_loop().create_future()

        def on_load(response):
            result = self.did_upload(response)
            if not deferred.done():
                deferred.set_result(result)

        def on_error(err, text_status=None, error_thrown=None):
            shaped = self.did_error(err, text_status, error_thrown)
            if not deferred.done():
                deferred.set_exception(UploadError.from_descriptor(shaped, text_status))

        def on_abort():
            self.is_uploading = False
            transport.abort()
            if not deferred.done():
                deferred.set_exception(UploadAborted("Upload aborted"))

        transport.on_progress = self.did_progress
        transport.on_load = on_load
        transport.on_error = on_error
        token.arm(on_abort)

        if not token.cancelled:
            try:
                await transport.send(data)
            except Exception as e:
                logger.error(f"Transport failed before completing: {e}")
                on_error(TransportError(text_status='error'), 'error', e)

        return await deferred

    # Lifecycle hooks

    def did_upload(self, data: Any) -> Any:
        """Set is_uploading to False, emit did_upload and return data."""
        self.is_uploading = False
        logger.info("Upload finished")
        self.emit('did_upload', data)
        return data

    def did_error(self, err: Any, text_status: Optional[str] = None, error_thrown: Any = None) -> Any:
        """
        Set is_uploading to False and emit did_error.

        An object descriptor loses any ``then`` callable and always ends up
        with an ``error_thrown``: a string reason is wrapped in
        UploadException, a missing one is synthesized from text_status.

        Args:
            err: Error descriptor from the transport
            text_status: Short error kind
            error_thrown: The error caused

        Returns:
            The (shaped) descriptor
        """
        self.is_uploading = False

        if isinstance(err, MutableMapping):
            if callable(err.get('then')):
                err['then'] = None
            if not err.get('error_thrown'):
                err['error_thrown'] = self._to_error(error_thrown, text_status)
        elif err is not None and not isinstance(err, _SCALARS):
            if callable(getattr(err, 'then', None)):
                err.then = None
            if not getattr(err, 'error_thrown', None):
                err.error_thrown = self._to_error(error_thrown, text_status)

        logger.warning(f"Upload failed: {text_status} {error_thrown}")
        self.emit('did_error', err, text_status, error_thrown)
        return err

    @staticmethod
    def _to_error(error_thrown: Any, text_status: Optional[str]) -> Any:
        if isinstance(error_thrown, str):
            return UploadException(error_thrown)
        if error_thrown is None:
            return UploadException(text_status or 'error')
        return error_thrown

    def did_progress(self, event: ProgressEvent) -> None:
        """Set event.percent and emit progress (NaN when total is 0)."""
        event.percent = event.loaded / event.total * 100 if event.total else math.nan
        self.emit('progress', event)

    def abort(self) -> None:
        """Set is_uploading to False and emit is_aborting."""
        self.is_uploading = False
        logger.info("Aborting upload")
        self.emit('is_aborting')
