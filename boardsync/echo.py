"""Echo suppression for writes this session originated.

One registry exists per open board session. It is handed by reference to the
mutator (which registers ids) and to the feed listener (which consumes them),
and is closed together with the session.
"""

import logging

logger = logging.getLogger(__name__)


class EchoSuppressor:
    def __init__(self) -> None:
        self._pending: set[str] = set()
        self._closed = False

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, item_id: str) -> None:
        """Expect a push echo for item_id. Called right before the remote write."""
        if self._closed:
            return
        self._pending.add(item_id)

    def consume(self, item_id: str | None) -> bool:
        """Return True (and forget the id) when the event is our own echo."""
        if item_id is None or item_id not in self._pending:
            return False
        self._pending.discard(item_id)
        logger.debug("Suppressed echo for item %s", item_id)
        return True

    def discard(self, item_id: str) -> None:
        """Drop a registration whose write never landed."""
        self._pending.discard(item_id)

    def close(self) -> None:
        self._pending.clear()
        self._closed = True
