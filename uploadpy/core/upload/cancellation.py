"""Cancellation token shared between an upload call and its transport."""
from typing import Callable, List


class CancellationToken:
    """
    One-shot cancellation signal.

    Created when an upload starts, before anything is awaited, so an
    ``abort()`` issued at any point of the call is observed. Callbacks armed
    on a token run exactly once: on ``cancel()``, or immediately when armed
    after cancellation.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        """Returns True once the token has been cancelled."""
        return self._cancelled

    def cancel(self, *args) -> None:
        """Cancel the token, running every armed callback once."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def arm(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (now, if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)
