import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from database import create_gateway
from listing import ExploreView
from logging_config import setup_logging
from profiles import ProfileView
from schemas import ALL_CATEGORIES, DEFAULT_CATEGORY, PROMPT_CATEGORIES
from session import SessionState
from settings import Settings, get_settings
from submission import AccountView, SubmitDialog, validation_errors
from theme import LocalStorage, ThemeState
from voting import VoteCard

logger = logging.getLogger(__name__)

SIGN_UP_MESSAGE = "Account created! Please check your email to confirm your address, then sign in."
COLOR_SCHEME_HINT = "Sec-CH-Prefers-Color-Scheme"


# ---------- Schemas (API layer) ----------

class PromptCreate(BaseModel):
    title: str
    body: str
    type: str = DEFAULT_CATEGORY
    tags: List[str] = Field(default_factory=list)


class PromptEdit(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    type: Optional[str] = None
    tags: Optional[List[str]] = None


class Credentials(BaseModel):
    email: str
    password: str
    display_name: Optional[str] = None


class DisplayNameUpdate(BaseModel):
    display_name: str = ""


class ThemeUpdate(BaseModel):
    mode: str


# ---------- Application state ----------

class Hub:
    """Everything one browser session shares: store gateway, session, theme and the long-lived views."""

    def __init__(self, settings: Settings, gateway):
        self.settings = settings
        self.gateway = gateway
        self.session = SessionState(gateway)
        self.theme = ThemeState(LocalStorage(settings.STORAGE_PATH), settings.DEFAULT_SYSTEM_THEME)
        self.explore = ExploreView(gateway, self.session, threshold=settings.SEARCH_THRESHOLD)
        self.profile: Optional[ProfileView] = None
        self.account = AccountView(
            gateway,
            self.session,
            page_size=settings.PAGE_SIZE,
            saved_seconds=settings.SAVED_INDICATOR_SECONDS,
        )

    async def start(self) -> None:
        await self.session.load()
        self.explore.mount()
        self.account.mount()
        if self.gateway is not None:
            await self.account.load()

    def stop(self) -> None:
        self.explore.unmount()
        if self.profile is not None:
            self.profile.unmount()
        self.account.unmount()
        self.session.close()

    def vote_cards(self, prompt_id: str) -> List[VoteCard]:
        """Every loaded card showing this prompt: the explore list and the open profile."""
        cards = [self.explore.card(prompt_id)]
        if self.profile is not None:
            cards.append(self.profile.card(prompt_id))
        return [card for card in cards if card is not None]

    def require_gateway(self):
        if self.gateway is None:
            raise HTTPException(500, "Database not available")
        return self.gateway

    def require_identity(self):
        self.require_gateway()
        if self.session.identity is None:
            raise HTTPException(401, "Please sign in first.")
        return self.session.identity


def create_app(settings: Optional[Settings] = None, gateway=None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
        gw = gateway if gateway is not None else await create_gateway(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
        hub = Hub(settings, gw)
        await hub.start()
        app.state.hub = hub
        logger.info(f"{settings.PROJECT_NAME} started (store {'configured' if gw else 'not configured'})")
        yield
        hub.stop()

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


def get_hub(request: Request) -> Hub:
    return request.app.state.hub


def register_routes(app: FastAPI) -> None:

    # ---------- Basic ----------

    @app.get("/")
    def root():
        return {"name": app.title, "status": "ok"}

    @app.get("/test")
    def test_database(hub: Hub = Depends(get_hub)):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "session": None,
        }
        if hub.gateway is not None:
            response["database"] = "✅ Configured"
            response["session"] = hub.session.user_id or "anonymous"
        return response

    # ---------- Prompts listing with search/filter ----------

    @app.get("/api/prompts")
    async def list_prompts(q: str = "", category: str = ALL_CATEGORIES, hub: Hub = Depends(get_hub)):
        if category != ALL_CATEGORIES and category not in PROMPT_CATEGORIES:
            raise HTTPException(400, f"Unknown category: {category}")
        if hub.gateway is None:
            return {"prompts": [], "signed_in": False, "error": None}

        explore = hub.explore
        # query and filter changes reuse the loaded rows; identity changes reload on their own
        if not explore.loaded:
            await explore.load()
        return {
            "prompts": [card.to_dict() for card in explore.results(q, category)],
            "signed_in": hub.session.identity is not None,
            "error": explore.error,
        }

    @app.post("/api/prompts", status_code=201)
    async def create_prompt(data: PromptCreate, hub: Hub = Depends(get_hub)):
        hub.require_identity()
        dialog = SubmitDialog(hub.gateway, hub.session)
        dialog.title = data.title
        dialog.body = data.body
        dialog.category = data.type
        for tag in data.tags:
            dialog.tag_input.add(tag)

        errors = validation_errors(dialog.title, dialog.body, dialog.category)
        if errors:
            raise HTTPException(400, "; ".join(errors))

        created = await dialog.submit()
        if dialog.error:
            raise HTTPException(502, dialog.error)
        if created is None:
            return {"created": True}
        if hub.explore.mounted:
            hub.explore.add_row(created)
        return created.model_dump(mode="json")

    # ---------- Voting (toggle) ----------

    @app.post("/api/prompts/{prompt_id}/vote")
    async def toggle_vote(prompt_id: str, hub: Hub = Depends(get_hub)):
        hub.require_identity()
        cards = hub.vote_cards(prompt_id)
        if not cards:
            raise HTTPException(404, "Prompt not found")
        if any(card.pending for card in cards):
            raise HTTPException(409, "Vote already in progress")
        card, others = cards[0], cards[1:]
        if not await card.toggle():
            raise HTTPException(502, "Vote could not be saved")
        for other in others:
            other.follow(card.row)
        return {"voted": card.row.voted, "votes": card.row.vote_count}

    # ---------- Profiles ----------

    @app.get("/api/profiles/{profile_id}")
    async def get_profile(profile_id: str, hub: Hub = Depends(get_hub)):
        hub.require_gateway()
        if hub.profile is not None:
            hub.profile.unmount()
        view = ProfileView(hub.gateway, hub.session, profile_id)
        view.mount()
        hub.profile = view
        await view.load()
        if view.summary is None:
            raise HTTPException(404, "Profile not found")
        return view.to_dict()

    # ---------- Auth ----------

    @app.get("/api/auth/session")
    def get_session(hub: Hub = Depends(get_hub)):
        identity = hub.session.identity
        return {
            "user": identity.model_dump() if identity else None,
            "loading": hub.session.loading,
        }

    @app.post("/api/auth/sign-in")
    async def sign_in(payload: Credentials, hub: Hub = Depends(get_hub)):
        error = await hub.session.sign_in(payload.email, payload.password)
        if error:
            raise HTTPException(400, error)
        identity = hub.session.identity
        return {"user": identity.model_dump() if identity else None}

    @app.post("/api/auth/sign-up")
    async def sign_up(payload: Credentials, hub: Hub = Depends(get_hub)):
        error = await hub.session.sign_up(payload.email, payload.password, payload.display_name)
        if error:
            raise HTTPException(400, error)
        return {"message": SIGN_UP_MESSAGE}

    @app.post("/api/auth/sign-out")
    async def sign_out(hub: Hub = Depends(get_hub)):
        error = await hub.session.sign_out()
        if error:
            raise HTTPException(400, error)
        return {"user": None}

    # ---------- Account: my prompts and profile ----------

    @app.get("/api/account/prompts")
    async def my_prompts(page: int = 1, hub: Hub = Depends(get_hub)):
        hub.require_identity()
        await hub.account.ensure_current()
        items, current, total = hub.account.page(page)
        return {
            "prompts": [p.to_dict() for p in items],
            "page": current,
            "total_pages": total,
            "total": len(hub.account.prompts or []),
        }

    @app.patch("/api/account/prompts/{prompt_id}")
    async def edit_prompt(prompt_id: str, data: PromptEdit, hub: Hub = Depends(get_hub)):
        hub.require_identity()
        await hub.account.ensure_current()
        prompt = hub.account.get(prompt_id)
        if prompt is None:
            raise HTTPException(404, "Prompt not found")
        if data.type is not None and data.type not in PROMPT_CATEGORIES:
            raise HTTPException(400, f"Unknown category: {data.type}")
        prompt.update(**data.model_dump(exclude_unset=True))
        return prompt.to_dict()

    @app.post("/api/account/prompts/{prompt_id}/save")
    async def save_prompt(prompt_id: str, hub: Hub = Depends(get_hub)):
        hub.require_identity()
        await hub.account.ensure_current()
        prompt = hub.account.get(prompt_id)
        if prompt is None:
            raise HTTPException(404, "Prompt not found")
        if not prompt.can_save:
            raise HTTPException(400, "Nothing to save")
        await hub.account.save_prompt(prompt_id)
        return prompt.to_dict()

    @app.get("/api/account/profile")
    async def my_profile(hub: Hub = Depends(get_hub)):
        identity = hub.require_identity()
        await hub.account.ensure_current()
        data = hub.account.profile_dict()
        data["id"] = identity.id
        data["email"] = identity.email
        return data

    @app.put("/api/account/profile")
    async def update_profile(payload: DisplayNameUpdate, hub: Hub = Depends(get_hub)):
        hub.require_identity()
        await hub.account.ensure_current()
        await hub.account.save_display_name(payload.display_name)
        return hub.account.profile_dict()

    # ---------- Theme ----------

    def _theme_response(hub: Hub, request: Request, response: Response) -> dict:
        hint = request.headers.get(COLOR_SCHEME_HINT)
        if hint:
            hub.theme.set_system_theme(hint.strip('"').lower())
        response.headers["Accept-CH"] = COLOR_SCHEME_HINT
        return hub.theme.snapshot()

    @app.get("/api/theme")
    def get_theme(request: Request, response: Response, hub: Hub = Depends(get_hub)):
        return _theme_response(hub, request, response)

    @app.put("/api/theme")
    def set_theme(payload: ThemeUpdate, request: Request, response: Response, hub: Hub = Depends(get_hub)):
        _theme_response(hub, request, response)
        try:
            hub.theme.set_mode(payload.mode)
        except ValueError as e:
            raise HTTPException(400, str(e))
        return hub.theme.snapshot()

    @app.post("/api/theme/toggle")
    def toggle_theme(request: Request, response: Response, hub: Hub = Depends(get_hub)):
        _theme_response(hub, request, response)
        hub.theme.toggle_mode()
        return hub.theme.snapshot()


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
