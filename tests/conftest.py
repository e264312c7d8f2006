"""Pytest fixtures for uploadpy tests."""
import asyncio

import pytest

from uploadpy import FileHandle, ProgressEvent


class FakeTransport:
    """
    In-memory transport following the XMLHttpRequest-shaped protocol.

    Args:
        outcome: ('load', args) or ('error', args) delivered after send
        progress: (loaded, total) pairs reported before the outcome
        block: Wait in send() until release() or abort() is called
    """

    def __init__(self, outcome=('load', ({'id': 42},)), progress=(), block=False):
        self.outcome = outcome
        self.progress = list(progress)
        self.block = block
        self.method = None
        self.url = None
        self.headers = {}
        self.sent = []
        self.params = None
        self.abort_calls = 0
        self.started = None
        self._released = None

        self.on_progress = None
        self.on_load = None
        self.on_error = None

    def open(self, method, url):
        self.method = method
        self.url = url

    def set_request_header(self, name, value):
        self.headers[name] = value

    async def send(self, data=None, params=None):
        self.sent.append(data)
        self.params = params
        self.started.set()

        for loaded, total in self.progress:
            self.on_progress(ProgressEvent(loaded=loaded, total=total))

        if self.block:
            await self._released.wait()

        if self.abort_calls:
            return

        kind, args = self.outcome
        if kind == 'load':
            self.on_load(*args)
        else:
            self.on_error(*args)

    def release(self):
        self._released.set()

    def abort(self):
        self.abort_calls += 1
        if self._released is not None:
            self._released.set()

    def bind_loop(self):
        """Create the asyncio primitives once a loop is running."""
        if self.started is None:
            self.started = asyncio.Event()
            self._released = asyncio.Event()


class FakeTransportFactory:
    """Hands out queued transports, then default successful ones."""

    def __init__(self, *transports):
        self.pending = list(transports)
        self.created = []

    def __call__(self):
        transport = self.pending.pop(0) if self.pending else FakeTransport()
        transport.bind_loop()
        self.created.append(transport)
        return transport


@pytest.fixture
def fake_transport():
    """Returns the FakeTransport class."""
    return FakeTransport


@pytest.fixture
def transport_factory():
    """Returns a factory producing default successful fake transports."""
    return FakeTransportFactory()


@pytest.fixture
def make_factory():
    """Returns a function building a factory from queued transports."""
    return FakeTransportFactory


@pytest.fixture
def file_a():
    """A small text file handle."""
    return FileHandle("a.txt", b"first file")


@pytest.fixture
def file_b():
    """A small PNG-named file handle."""
    return FileHandle("b.png", b"\x89PNG\r\n\x1a\n")
