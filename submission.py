"""
Creating and editing prompts.

TagInput mirrors the chip-style tag field, SubmitDialog is the create form,
and AccountView holds the signed-in user's own prompts (editable records with
dirty/saving/saved state) plus their display name.
"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from database import GatewayError
from listing import normalize_category
from schemas import DEFAULT_CATEGORY, PROMPT_CATEGORIES, PromptRow
from views import View

logger = logging.getLogger(__name__)

SAVED_LABEL = "Saved ✓"
COMMIT_KEYS = ("Enter", ",")


class TagInput:
    def __init__(self, tags: Iterable[str] = ()):
        self.tags: List[str] = []
        self.buffer = ""
        for tag in tags:
            self.add(tag)

    def add(self, tag: str) -> bool:
        t = (tag or "").strip().lower()
        if not t or t in self.tags:
            return False
        self.tags.append(t)
        self.buffer = ""
        return True

    def remove(self, tag: str) -> None:
        self.tags = [t for t in self.tags if t != tag]

    def key(self, key: str) -> None:
        if key in COMMIT_KEYS:
            self.add(self.buffer)
        elif key == "Backspace":
            if self.buffer:
                self.buffer = self.buffer[:-1]
            elif self.tags:
                self.remove(self.tags[-1])
        else:
            self.buffer += key

    def feed(self, text: str) -> None:
        """Type `text` one keystroke at a time; ',' and newlines commit the tag."""
        for ch in text:
            self.key("Enter" if ch == "\n" else ch)


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    return TagInput(tags or ()).tags


def validation_errors(title: str, body: str, category: str) -> List[str]:
    errors = []
    if not (title or "").strip():
        errors.append("Title is required")
    if not (body or "").strip():
        errors.append("Prompt text is required")
    if category not in PROMPT_CATEGORIES:
        errors.append(f"Unknown category: {category}")
    return errors


class SubmitDialog:
    def __init__(self, gateway, session):
        self.gateway = gateway
        self.session = session
        self.reset()

    def reset(self) -> None:
        self.title = ""
        self.body = ""
        self.category = DEFAULT_CATEGORY
        self.tag_input = TagInput()
        self.loading = False
        self.error: Optional[str] = None

    @property
    def tags(self) -> List[str]:
        return self.tag_input.tags

    @property
    def can_submit(self) -> bool:
        if self.loading or self.session.identity is None:
            return False
        return not validation_errors(self.title, self.body, self.category)

    async def submit(self) -> Optional[PromptRow]:
        identity = self.session.identity
        if identity is None:
            self.error = "Please sign in first."
            return None
        if not self.can_submit:
            return None

        self.loading = True
        self.error = None
        record = {
            "title": self.title.strip(),
            "body": self.body.strip(),
            "type": self.category,
            "tags": list(self.tags),
            "user_id": identity.id,
        }
        try:
            created = await self.gateway.insert_prompt(record)
        except GatewayError as e:
            logger.error(f"Prompt submission failed: {e.message}")
            self.error = e.message
            return None
        finally:
            self.loading = False

        logger.info(f"Prompt submitted by {identity.id}: {record['title']!r}")
        self.reset()
        return created


class EditablePrompt:
    def __init__(self, row: PromptRow):
        self.id = row.id
        self.created_at = row.created_at
        self.title = row.title
        self.body = row.body
        self.type = normalize_category(row.type)
        self.tags = list(row.tags or [])
        self.dirty = False
        self.saving = False
        self.saved = False
        self.error: Optional[str] = None
        self._saved_timer: Optional[asyncio.TimerHandle] = None

    def update(self, **fields) -> None:
        for name in ("title", "body", "type"):
            if fields.get(name) is not None:
                setattr(self, name, fields[name])
        if fields.get("tags") is not None:
            self.tags = normalize_tags(fields["tags"])
        self.dirty = True
        self.saved = False

    @property
    def can_save(self) -> bool:
        if not self.title.strip() or not self.body.strip():
            return False
        return self.dirty and not self.saving

    async def save(self, gateway, user_id: str, saved_seconds: float = 1.4) -> bool:
        if self.saving:
            return False
        self.saving = True
        self.error = None
        self.saved = False
        fields = {
            "title": self.title.strip(),
            "body": self.body.strip(),
            "type": self.type,
            "tags": list(self.tags),
        }
        try:
            await gateway.update_prompt(self.id, user_id, fields)
        except GatewayError as e:
            logger.error(f"Saving prompt {self.id} failed: {e.message}")
            self.error = e.message
            return False
        finally:
            self.saving = False

        self.dirty = False
        self.saved = True
        self._schedule_clear(saved_seconds)
        return True

    def _schedule_clear(self, seconds: float) -> None:
        if self._saved_timer:
            self._saved_timer.cancel()
        self._saved_timer = asyncio.get_running_loop().call_later(seconds, self._clear_saved)

    def _clear_saved(self) -> None:
        self.saved = False
        self._saved_timer = None

    @property
    def status(self) -> Optional[str]:
        if self.saved:
            return SAVED_LABEL
        if self.dirty:
            return "Unsaved changes"
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if isinstance(self.created_at, datetime) else None,
            "title": self.title,
            "body": self.body,
            "type": self.type,
            "tags": self.tags,
            "dirty": self.dirty,
            "saving": self.saving,
            "saved": self.saved,
            "error": self.error,
            "status": self.status,
            "can_save": self.can_save,
        }


def paginate(items: List, page: int, page_size: int) -> Tuple[List, int, int]:
    """Return (page items, current page, total pages); page is clamped into range."""
    total_pages = max(1, math.ceil(len(items) / page_size))
    current = min(max(1, page), total_pages)
    start = (current - 1) * page_size
    return items[start:start + page_size], current, total_pages


class AccountView(View):
    def __init__(self, gateway, session, page_size: int = 5, saved_seconds: float = 1.4):
        super().__init__(gateway, session)
        self.page_size = page_size
        self.saved_seconds = saved_seconds
        self.prompts: Optional[List[EditablePrompt]] = None
        self.display_name = ""
        self.profile_created_at: Optional[datetime] = None
        self.profile_saving = False
        self.profile_error: Optional[str] = None
        self.profile_success: Optional[str] = None
        self._profile_timer: Optional[asyncio.TimerHandle] = None
        self.loaded_for: Optional[str] = None

    async def load(self) -> None:
        token = self._begin()
        identity = self.session.identity
        if identity is None:
            self.prompts = None
            self.display_name = ""
            self.profile_created_at = None
            self.loaded_for = None
            self.loading = False
            return

        self.loading = True
        prompts, profile = await asyncio.gather(
            self._load_prompts(identity.id),
            self._load_profile(identity.id),
        )
        if not self._is_live(token):
            self._discard("account data")
            return
        self.prompts = prompts
        self.display_name = (profile.display_name or "") if profile else ""
        self.profile_created_at = profile.created_at if profile else None
        self.loading = False
        self.loaded_for = identity.id

    async def ensure_current(self) -> None:
        if self.loaded_for != self.session.user_id:
            await self.load()

    async def _load_prompts(self, user_id: str) -> List[EditablePrompt]:
        try:
            rows = await self.gateway.fetch_prompts(user_id=user_id, newest_first=True)
        except GatewayError as e:
            logger.error(f"Could not load prompts for {user_id}: {e.message}")
            return []
        return [EditablePrompt(row) for row in rows]

    async def _load_profile(self, user_id: str):
        try:
            return await self.gateway.fetch_profile(user_id)
        except GatewayError as e:
            logger.error(f"Could not load profile {user_id}: {e.message}")
            return None

    def page(self, page: int = 1) -> Tuple[List[EditablePrompt], int, int]:
        return paginate(self.prompts or [], page, self.page_size)

    def get(self, prompt_id: str) -> Optional[EditablePrompt]:
        for p in self.prompts or []:
            if p.id == prompt_id:
                return p
        return None

    async def save_prompt(self, prompt_id: str) -> Optional[EditablePrompt]:
        identity = self.session.identity
        prompt = self.get(prompt_id)
        if identity is None or prompt is None:
            return None
        if prompt.can_save:
            await prompt.save(self.gateway, identity.id, self.saved_seconds)
        return prompt

    async def save_display_name(self, name: str) -> bool:
        identity = self.session.identity
        if identity is None:
            return False
        self.profile_saving = True
        self.profile_error = None
        self.profile_success = None
        value = (name or "").strip()
        try:
            await self.gateway.update_display_name(identity.id, value or None)
        except GatewayError as e:
            logger.error(f"Saving display name failed: {e.message}")
            self.profile_error = e.message
            return False
        finally:
            self.profile_saving = False

        self.display_name = value
        self.profile_success = SAVED_LABEL
        if self._profile_timer:
            self._profile_timer.cancel()
        self._profile_timer = asyncio.get_running_loop().call_later(self.saved_seconds, self._clear_profile_success)
        return True

    def _clear_profile_success(self) -> None:
        self.profile_success = None
        self._profile_timer = None

    def profile_dict(self) -> dict:
        return {
            "display_name": self.display_name,
            "created_at": self.profile_created_at.isoformat() if self.profile_created_at else None,
            "saving": self.profile_saving,
            "error": self.profile_error,
            "success": self.profile_success,
        }
