import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

ProgressListener = Callable[[Dict], None]


class ProgressService:
    """In-process progress sink; emitting never fails the caller"""

    def __init__(self):
        self._listeners: List[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def has_active_connections(self) -> bool:
        return bool(self._listeners)

    def emit(self, event: Dict):
        """event: {operationId, type, phase, progress, message}"""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed for {event.get('operationId')}: {e}")
