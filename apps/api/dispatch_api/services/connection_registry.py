from collections import defaultdict
from collections.abc import Callable
from threading import Lock
from typing import Protocol

Sender = Callable[[dict], None]


class ConnectionRegistry(Protocol):
    def send(self, target_id: str, event: str, payload: dict) -> bool: ...


class InMemoryConnectionRegistry:
    """Live real-time connections keyed by user id.

    A target may hold several connections (phone and web). ``send`` returns
    True when at least one of them accepted the message.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._senders: dict[str, list[Sender]] = defaultdict(list)

    def register(self, target_id: str, sender: Sender) -> None:
        with self._lock:
            self._senders[target_id].append(sender)

    def unregister(self, target_id: str, sender: Sender) -> None:
        with self._lock:
            senders = self._senders.get(target_id)
            if not senders:
                return
            if sender in senders:
                senders.remove(sender)
            if not senders:
                del self._senders[target_id]

    def is_connected(self, target_id: str) -> bool:
        with self._lock:
            return bool(self._senders.get(target_id))

    def connection_count(self) -> int:
        with self._lock:
            return sum(len(senders) for senders in self._senders.values())

    def clear(self) -> None:
        with self._lock:
            self._senders.clear()

    def send(self, target_id: str, event: str, payload: dict) -> bool:
        with self._lock:
            senders = list(self._senders.get(target_id, ()))
        message = {"event": event, "payload": payload}
        delivered = False
        for sender in senders:
            sender(message)
            delivered = True
        return delivered
