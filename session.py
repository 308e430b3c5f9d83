import logging
from typing import Callable, List, Optional

from database import GatewayError
from schemas import SessionIdentity

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Database not available"

Listener = Callable[[Optional[SessionIdentity]], None]


class SessionState:
    """Holds the signed-in identity for this process and tells subscribers when it changes."""

    def __init__(self, gateway):
        self._gateway = gateway
        self.identity: Optional[SessionIdentity] = None
        self.loading = True
        self._listeners: List[Listener] = []
        self._gateway_unsubscribe: Optional[Callable[[], None]] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    async def load(self) -> None:
        if self._gateway is None:
            self.loading = False
            return
        if self._gateway_unsubscribe is None:
            self._gateway_unsubscribe = self._gateway.on_auth_state_change(self._on_auth_change)
        try:
            identity = await self._gateway.get_session_identity()
        except GatewayError as e:
            logger.error(f"Could not restore session: {e.message}")
            identity = None
        self._set_identity(identity)
        self.loading = False

    def close(self) -> None:
        if self._gateway_unsubscribe:
            self._gateway_unsubscribe()
            self._gateway_unsubscribe = None
        self._listeners.clear()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _on_auth_change(self, identity: Optional[SessionIdentity]) -> None:
        self.loading = False
        self._set_identity(identity)

    def _set_identity(self, identity: Optional[SessionIdentity]) -> None:
        previous = self.user_id
        self.identity = identity
        if previous == self.user_id:
            return
        logger.info(f"Session identity changed: {previous or 'anonymous'} -> {self.user_id or 'anonymous'}")
        for listener in list(self._listeners):
            listener(identity)

    # ---------- Auth actions (return an error message or None) ----------

    async def sign_in(self, email: str, password: str) -> Optional[str]:
        if self._gateway is None:
            return NOT_CONFIGURED
        try:
            await self._gateway.sign_in(email, password)
        except GatewayError as e:
            logger.warning(f"Sign-in failed for {email}: {e.message}")
            return e.message
        return None

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Optional[str]:
        if self._gateway is None:
            return NOT_CONFIGURED
        try:
            await self._gateway.sign_up(email, password, (display_name or "").strip() or None)
        except GatewayError as e:
            logger.warning(f"Sign-up failed for {email}: {e.message}")
            return e.message
        return None

    async def sign_out(self) -> Optional[str]:
        if self._gateway is None:
            return NOT_CONFIGURED
        try:
            await self._gateway.sign_out()
        except GatewayError as e:
            logger.error(f"Sign-out failed: {e.message}")
            return e.message
        return None
