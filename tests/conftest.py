import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from database import GatewayError
from schemas import Profile, ProfileMetrics, PromptRow, SessionIdentity


class InMemoryGateway:
    """Stand-in for the hosted store with the same async surface as SupabaseGateway."""

    def __init__(self):
        self.prompts = []
        self.votes = set()
        self.profiles = {}
        self.metrics = {}
        self.users = {}
        self.counts_view_available = True
        self.fail = {}
        self.calls = []
        self.write_gate = None
        self.read_gate = None
        self._session = None
        self._listeners = []

    # ---------- helpers ----------

    def _check(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise GatewayError(self.fail[name])

    def add_prompt(self, title, body="Explain it step by step.", type="Learning", tags=None,
                   user_id="author-1", votes=0, created_at=None):
        record = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "title": title,
            "body": body,
            "type": type,
            "tags": tags,
            "created_at": created_at or datetime.now(timezone.utc) - timedelta(minutes=len(self.prompts)),
        }
        self.prompts.append(record)
        for i in range(votes):
            self.votes.add((record["id"], f"voter-{i}"))
        return record

    def add_profile(self, profile_id, display_name=None, created_at=None):
        self.profiles[profile_id] = {
            "id": profile_id,
            "display_name": display_name,
            "created_at": created_at,
        }

    def register_user(self, email, password, user_id=None):
        user_id = user_id or str(uuid.uuid4())
        self.users[email] = (password, user_id)
        return user_id

    def _count(self, prompt_id):
        return sum(1 for pid, _ in self.votes if pid == prompt_id)

    def _emit(self, identity):
        for listener in list(self._listeners):
            listener(identity)

    # ---------- prompts ----------

    async def fetch_prompts_with_counts(self, user_id=None):
        self._check("fetch_prompts_with_counts")
        if self.read_gate:
            await self.read_gate.wait()
        if not self.counts_view_available:
            raise GatewayError('relation "public.prompts_with_counts" does not exist')
        rows = []
        for p in self.prompts:
            if user_id and p["user_id"] != user_id:
                continue
            author = self.profiles.get(p["user_id"], {}).get("display_name")
            rows.append(PromptRow(**p, vote_count=self._count(p["id"]), author_display_name=author))
        return rows

    async def fetch_prompts(self, user_id=None, newest_first=False):
        self._check("fetch_prompts")
        await asyncio.sleep(0)
        records = [p for p in self.prompts if not user_id or p["user_id"] == user_id]
        if newest_first:
            records = sorted(records, key=lambda p: p["created_at"], reverse=True)
        return [PromptRow(**p) for p in records]

    async def insert_prompt(self, record):
        self._check("insert_prompt")
        await asyncio.sleep(0)
        created = dict(record, id=str(uuid.uuid4()), created_at=datetime.now(timezone.utc))
        self.prompts.append(created)
        return PromptRow(**created)

    async def update_prompt(self, prompt_id, user_id, fields):
        self._check("update_prompt")
        await asyncio.sleep(0)
        for p in self.prompts:
            if p["id"] == prompt_id and p["user_id"] == user_id:
                p.update(fields)

    # ---------- votes ----------

    async def fetch_voted_prompt_ids(self, user_id):
        self._check("fetch_voted_prompt_ids")
        await asyncio.sleep(0)
        return {pid for pid, uid in self.votes if uid == user_id}

    async def insert_vote(self, prompt_id, user_id):
        self._check("insert_vote")
        if self.write_gate:
            await self.write_gate.wait()
        if (prompt_id, user_id) in self.votes:
            raise GatewayError('duplicate key value violates unique constraint "prompt_votes_pkey"')
        self.votes.add((prompt_id, user_id))

    async def delete_vote(self, prompt_id, user_id):
        self._check("delete_vote")
        if self.write_gate:
            await self.write_gate.wait()
        self.votes.discard((prompt_id, user_id))

    async def count_votes_given(self, user_id):
        self._check("count_votes_given")
        return sum(1 for _, uid in self.votes if uid == user_id)

    # ---------- profiles ----------

    async def fetch_profile(self, profile_id):
        self._check("fetch_profile")
        row = self.profiles.get(profile_id)
        return Profile(**row) if row else None

    async def update_display_name(self, user_id, display_name):
        self._check("update_display_name")
        self.profiles.setdefault(user_id, {"id": user_id})["display_name"] = display_name

    async def fetch_profile_metrics(self, user_id):
        self._check("fetch_profile_metrics")
        row = self.metrics.get(user_id)
        return ProfileMetrics(**row) if row else None

    # ---------- auth ----------

    async def get_session_identity(self):
        self._check("get_session_identity")
        return self._session

    async def sign_in(self, email, password):
        self._check("sign_in")
        if self.users.get(email, (None,))[0] != password:
            raise GatewayError("Invalid login credentials")
        self._session = SessionIdentity(id=self.users[email][1], email=email)
        self._emit(self._session)

    async def sign_up(self, email, password, display_name=None):
        self._check("sign_up")
        if email in self.users:
            raise GatewayError("User already registered")
        user_id = self.register_user(email, password)
        self.add_profile(user_id, display_name=display_name, created_at=datetime.now(timezone.utc))

    async def sign_out(self):
        self._check("sign_out")
        self._session = None
        self._emit(None)

    def on_auth_state_change(self, callback):
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)


class FakeSession:
    """Minimal session holder for unit tests that don't need auth events."""

    def __init__(self, identity=None):
        self.identity = identity
        self._listeners = []

    @property
    def user_id(self):
        return self.identity.id if self.identity else None

    def subscribe(self, listener):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def switch(self, identity):
        self.identity = identity
        for listener in list(self._listeners):
            listener(identity)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def viewer():
    return SessionIdentity(id="viewer-1", email="viewer@example.com")


@pytest.fixture
def anonymous_session():
    return FakeSession()


@pytest.fixture
def viewer_session(viewer):
    return FakeSession(viewer)


@pytest.fixture
def settings(tmp_path):
    from settings import Settings
    return Settings(
        STORAGE_PATH=str(tmp_path / "storage.json"),
        SAVED_INDICATOR_SECONDS=0.05,
        SUPABASE_URL=None,
        SUPABASE_ANON_KEY=None,
    )


@pytest.fixture
async def client(gateway, settings):
    """Async HTTP client over the app with the in-memory gateway; runs the lifespan."""
    from main import create_app

    app = create_app(settings=settings, gateway=gateway)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
