import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel

from database import GatewayError
from listing import normalize_rows
from schemas import Profile, ProfileMetrics, PromptRow
from views import View
from voting import VoteCard

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def ordinal_percentile(n: Optional[float]) -> str:
    if not n or n <= 0:
        return "0th percentile"
    v = max(1, min(100, int(math.floor(n + 0.5))))
    j, k = v % 10, v % 100
    if j == 1 and k != 11:
        suffix = "st"
    elif j == 2 and k != 12:
        suffix = "nd"
    elif j == 3 and k != 13:
        suffix = "rd"
    else:
        suffix = "th"
    return f"{v}{suffix} percentile"


def profile_age_days(created_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days since `created_at`, floored and never negative."""
    if created_at is None:
        return None
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, math.floor((now - created_at).total_seconds() / SECONDS_PER_DAY))


class ProfileSummary(BaseModel):
    profile: Profile
    prompts: List[PromptRow] = []
    metrics: Optional[ProfileMetrics] = None
    age_days: Optional[int] = None
    prompts_created: int = 0
    votes_received: int = 0
    votes_given: int = 0
    percentiles: Optional[Dict[str, str]] = None


class ProfileView(View):
    def __init__(self, gateway, session, profile_id: str):
        super().__init__(gateway, session)
        self.profile_id = profile_id
        self.summary: Optional[ProfileSummary] = None
        self.error: Optional[str] = None
        self._cards: Dict[str, VoteCard] = {}

    async def _fetch_profile(self) -> Profile:
        try:
            profile = await self.gateway.fetch_profile(self.profile_id)
        except GatewayError as e:
            logger.error(f"Could not load profile {self.profile_id}: {e.message}")
            profile = None
        return profile or Profile(id=self.profile_id)

    async def _fetch_metrics(self) -> Optional[ProfileMetrics]:
        try:
            return await self.gateway.fetch_profile_metrics(self.profile_id)
        except GatewayError as e:
            logger.debug(f"profile_metrics unavailable for {self.profile_id}: {e.message}")
            return None

    async def _fetch_prompts(self) -> List[PromptRow]:
        try:
            rows = await self.gateway.fetch_prompts_with_counts(user_id=self.profile_id)
        except GatewayError as e:
            logger.error(f"Could not load prompts for profile {self.profile_id}: {e.message}")
            return []
        identity = self.session.identity
        if identity:
            try:
                voted = await self.gateway.fetch_voted_prompt_ids(identity.id)
            except GatewayError as e:
                logger.warning(f"Could not read votes for {identity.id}: {e.message}")
                voted = set()
            for row in rows:
                row.voted = row.id in voted
        return normalize_rows(rows)

    async def load(self) -> None:
        token = self._begin()
        self.loading = True
        self.error = None

        profile = await self._fetch_profile()
        if not self._is_live(token):
            self._discard("profile")
            return
        metrics = await self._fetch_metrics()
        if not self._is_live(token):
            self._discard("profile")
            return
        prompts = await self._fetch_prompts()
        if not self._is_live(token):
            self._discard("profile")
            return

        summary = ProfileSummary(
            profile=profile,
            prompts=prompts,
            metrics=metrics,
            age_days=profile_age_days(profile.created_at),
        )
        if metrics:
            summary.prompts_created = metrics.prompts_created
            summary.votes_received = metrics.votes_received
            summary.votes_given = metrics.votes_given
            summary.percentiles = {
                "prompts_created": ordinal_percentile(metrics.prompts_percentile),
                "votes_received": ordinal_percentile(metrics.votes_received_percentile),
                "votes_given": ordinal_percentile(metrics.votes_given_percentile),
            }
        else:
            summary.prompts_created = len(prompts)
            summary.votes_received = sum(p.vote_count for p in prompts)
            try:
                summary.votes_given = await self.gateway.count_votes_given(self.profile_id)
            except GatewayError as e:
                logger.error(f"Could not count votes given by {self.profile_id}: {e.message}")
                self.error = e.message
            if not self._is_live(token):
                self._discard("profile")
                return

        self.summary = summary
        self._cards = {row.id: VoteCard(row, self.gateway, self.session) for row in summary.prompts}
        self.loading = False

    def card(self, prompt_id: str) -> Optional[VoteCard]:
        return self._cards.get(prompt_id)

    def to_dict(self) -> dict:
        data = self.summary.model_dump(mode="json", exclude={"prompts"})
        data["prompts"] = [self._cards[row.id].to_dict() for row in self.summary.prompts]
        data["error"] = self.error
        return data
