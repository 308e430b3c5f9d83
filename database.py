"""
Remote Data Gateway

Typed async access to the hosted Supabase project: the prompts, profiles and
prompt_votes tables, the prompts_with_counts and profile_metrics views, and
the auth endpoints. Every failed request raises GatewayError carrying the
backend's message.
"""

import logging
from typing import Callable, Dict, List, Optional, Set

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from supabase_auth.errors import AuthError

from schemas import Profile, ProfileMetrics, PromptRow, SessionIdentity

logger = logging.getLogger(__name__)

PROMPTS = "prompts"
PROMPTS_WITH_COUNTS = "prompts_with_counts"
PROFILES = "profiles"
PROFILE_METRICS = "profile_metrics"
VOTES = "prompt_votes"


class GatewayError(Exception):
    """A request to the hosted store failed; `message` is the backend's text."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def identity_from_session(session) -> Optional[SessionIdentity]:
    user = getattr(session, "user", None) if session else None
    if not user:
        return None
    return SessionIdentity(id=str(user.id), email=getattr(user, "email", None))


class SupabaseGateway:
    def __init__(self, client: AsyncClient):
        self._client = client

    async def _execute(self, query, action: str):
        try:
            return await query.execute()
        except APIError as e:
            message = e.message or str(e)
            logger.debug(f"{action} failed: {message}")
            raise GatewayError(message) from e
        except httpx.HTTPError as e:
            logger.debug(f"{action} failed: {e}")
            raise GatewayError(str(e)) from e

    # ---------- Prompts ----------

    async def fetch_prompts_with_counts(self, user_id: Optional[str] = None) -> List[PromptRow]:
        query = self._client.table(PROMPTS_WITH_COUNTS).select("*")
        if user_id:
            query = query.eq("user_id", user_id)
        res = await self._execute(query, "read prompts_with_counts")
        return [PromptRow(**row) for row in res.data or []]

    async def fetch_prompts(self, user_id: Optional[str] = None, newest_first: bool = False) -> List[PromptRow]:
        query = self._client.table(PROMPTS).select("*")
        if user_id:
            query = query.eq("user_id", user_id)
        if newest_first:
            query = query.order("created_at", desc=True)
        res = await self._execute(query, "read prompts")
        return [PromptRow(**row) for row in res.data or []]

    async def insert_prompt(self, record: Dict) -> Optional[PromptRow]:
        res = await self._execute(self._client.table(PROMPTS).insert(record), "insert prompt")
        rows = res.data or []
        return PromptRow(**rows[0]) if rows else None

    async def update_prompt(self, prompt_id: str, user_id: str, fields: Dict) -> None:
        query = self._client.table(PROMPTS).update(fields).eq("id", prompt_id).eq("user_id", user_id)
        await self._execute(query, "update prompt")

    # ---------- Votes ----------

    async def fetch_voted_prompt_ids(self, user_id: str) -> Set[str]:
        query = self._client.table(VOTES).select("prompt_id").eq("user_id", user_id)
        res = await self._execute(query, "read votes")
        return {str(v["prompt_id"]) for v in res.data or []}

    async def insert_vote(self, prompt_id: str, user_id: str) -> None:
        query = self._client.table(VOTES).insert({"prompt_id": prompt_id, "user_id": user_id})
        await self._execute(query, "insert vote")

    async def delete_vote(self, prompt_id: str, user_id: str) -> None:
        query = self._client.table(VOTES).delete().eq("prompt_id", prompt_id).eq("user_id", user_id)
        await self._execute(query, "delete vote")

    async def count_votes_given(self, user_id: str) -> int:
        query = self._client.table(VOTES).select("*", count="exact", head=True).eq("user_id", user_id)
        res = await self._execute(query, "count votes")
        return res.count or 0

    # ---------- Profiles ----------

    async def fetch_profile(self, profile_id: str) -> Optional[Profile]:
        query = self._client.table(PROFILES).select("*").eq("id", profile_id).maybe_single()
        res = await self._execute(query, "read profile")
        # maybe_single() yields no response at all when the row is missing
        if res is None or not res.data:
            return None
        return Profile(**res.data)

    async def update_display_name(self, user_id: str, display_name: Optional[str]) -> None:
        query = self._client.table(PROFILES).update({"display_name": display_name}).eq("id", user_id)
        await self._execute(query, "update profile")

    async def fetch_profile_metrics(self, user_id: str) -> Optional[ProfileMetrics]:
        query = self._client.table(PROFILE_METRICS).select("*").eq("user_id", user_id).maybe_single()
        res = await self._execute(query, "read profile_metrics")
        if res is None or not res.data:
            return None
        return ProfileMetrics(**res.data)

    # ---------- Auth ----------

    async def get_session_identity(self) -> Optional[SessionIdentity]:
        try:
            session = await self._client.auth.get_session()
        except AuthError as e:
            raise GatewayError(e.message) from e
        return identity_from_session(session)

    async def sign_in(self, email: str, password: str) -> None:
        try:
            await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            raise GatewayError(e.message) from e

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> None:
        credentials = {"email": email, "password": password}
        if display_name:
            credentials["options"] = {"data": {"display_name": display_name}}
        try:
            await self._client.auth.sign_up(credentials)
        except AuthError as e:
            raise GatewayError(e.message) from e

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except AuthError as e:
            raise GatewayError(e.message) from e

    def on_auth_state_change(self, callback: Callable[[Optional[SessionIdentity]], None]) -> Callable[[], None]:
        """Push identity changes to `callback`; returns the unsubscribe function."""
        subscription = self._client.auth.on_auth_state_change(
            lambda _event, session: callback(identity_from_session(session))
        )
        return subscription.unsubscribe


async def create_gateway(url: Optional[str], key: Optional[str]) -> Optional[SupabaseGateway]:
    if not url or not key:
        logger.warning("Supabase URL/key missing. Set SUPABASE_URL and SUPABASE_ANON_KEY.")
        return None
    client = await acreate_client(url, key)
    return SupabaseGateway(client)
