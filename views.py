import asyncio
import logging
from typing import Callable, Optional, Set

from schemas import SessionIdentity

logger = logging.getLogger(__name__)


class View:
    """
    Base for the page-level views.

    A view subscribes to the session on mount and unsubscribes on unmount.
    Loads take a liveness token; results are only applied while the token is
    still current, so a load that finishes after unmount or after a newer load
    started is dropped.
    """

    def __init__(self, gateway, session):
        self.gateway = gateway
        self.session = session
        self.mounted = False
        self.loading = False
        self._generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()

    def mount(self) -> None:
        if self.mounted:
            return
        self.mounted = True
        self._unsubscribe = self.session.subscribe(self._on_identity_change)

    def unmount(self) -> None:
        self.mounted = False
        self.loading = False
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_live(self, token: int) -> bool:
        return self.mounted and token == self._generation

    def _discard(self, what: str) -> None:
        # a newer load, if one is running, still owns `loading`
        if not self.mounted:
            self.loading = False
        logger.debug(f"{type(self).__name__}: discarding stale {what}")

    def _on_identity_change(self, identity: Optional[SessionIdentity]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"{type(self).__name__}: identity changed outside the event loop, reload skipped")
            return
        task = loop.create_task(self.load())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def load(self) -> None:
        raise NotImplementedError
