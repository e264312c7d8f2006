"""Event emitter implementation using Observer Pattern."""
from typing import Dict, List, Callable, Optional

from ..logging import get_logger


class EventEmitter:
    """Event emitter using Observer Pattern."""
    
    def __init__(self, logger_name: str = 'uploadpy.events'):
        """Initializes event emitter."""
        self._events: Dict[str, List[Callable]] = {}
        self._logger = get_logger(logger_name)
    
    def on(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers an event handler."""
        if event not in self._events:
            self._events[event] = []
        self._events[event].append(callback)
        return self
    
    def once(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers a handler that is removed after its first call."""
        def wrapper(*args, **kwargs):
            self.off(event, wrapper)
            return callback(*args, **kwargs)
        
        wrapper.listener = callback
        return self.on(event, wrapper)
    
    def emit(self, event: str, *args, **kwargs):
        """Emits an event."""
        callbacks = self._events.get(event)
        if not callbacks:
            self._logger.debug(f"No listeners for '{event}'")
            return
        # Copy: one-shot handlers remove themselves while we iterate
        for callback in list(callbacks):
            callback(*args, **kwargs)
    
    def off(self, event: str, callback: Optional[Callable] = None) -> 'EventEmitter':
        """Removes an event handler."""
        if event not in self._events:
            return self
        
        if callback is None:
            del self._events[event]
        else:
            self._events[event] = [
                cb for cb in self._events[event]
                if cb != callback and getattr(cb, 'listener', None) != callback
            ]
            if not self._events[event]:
                del self._events[event]
        
        return self
    
    def listener_count(self, event: str) -> int:
        """Returns the number of handlers registered for an event."""
        return len(self._events.get(event, []))
