import logging
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

StorageListener = Callable[[str, Optional[str], Optional[str]], None]


class SessionStorage:
    """Key/value store shared by every context (tab) of one client.

    Writers pass themselves as ``source``; every other subscriber is told about
    the change, mirroring browser storage events which never fire in the tab
    that made the write.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._subscribers: List[Tuple[object, StorageListener]] = []

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str, source: object = None) -> None:
        old = self._data.get(key)
        self._data[key] = value
        if old != value:
            self._notify(key, old, value, source)

    def remove(self, key: str, source: object = None) -> None:
        if key not in self._data:
            return
        old = self._data.pop(key)
        self._notify(key, old, None, source)

    def subscribe(self, listener: StorageListener, owner: object = None) -> Callable[[], None]:
        entry = (owner, listener)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def _notify(self, key: str, old: Optional[str], new: Optional[str], source: object) -> None:
        for owner, listener in list(self._subscribers):
            if source is not None and owner is source:
                continue
            try:
                listener(key, old, new)
            except Exception:
                logger.exception("Storage listener failed for key %s", key)
