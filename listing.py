"""
Listing engine for the explore page.

load_listing() reads prompts with their vote totals and marks the viewer's
votes; build_listing() is the pure filter -> search -> sort step that runs on
every query or filter change.
"""

import logging
from typing import Dict, Iterable, List, Optional

from database import GatewayError
from schemas import ALL_CATEGORIES, PromptRow, SessionIdentity
from search import DEFAULT_THRESHOLD, FuzzyIndex
from views import View
from voting import VoteCard

logger = logging.getLogger(__name__)

# Retired category labels and their current names
LEGACY_CATEGORIES: Dict[str, str] = {
    "System Prompt": "Global Instruction",
    "Chat Setup": "Learning",
}

# (field, weight): title counts most, body next, category and tags least
SEARCH_KEYS = (
    ("title", 0.5),
    ("body", 0.3),
    ("type", 0.2),
    ("tags", 0.2),
)


def normalize_category(label: str) -> str:
    return LEGACY_CATEGORIES.get(label, label)


def normalize_rows(rows: Iterable[PromptRow]) -> List[PromptRow]:
    normalized = []
    for row in rows:
        row.type = normalize_category(row.type)
        normalized.append(row)
    return normalized


def filter_by_category(rows: Iterable[PromptRow], category: str = ALL_CATEGORIES) -> List[PromptRow]:
    if not category or category == ALL_CATEGORIES:
        return list(rows)
    if category == "Learning":
        return [r for r in rows if r.type in ("Learning", "Chat Setup")]
    return [r for r in rows if r.type == category]


def sort_by_votes(rows: Iterable[PromptRow]) -> List[PromptRow]:
    # sorted() is stable with reverse=True, equal counts keep their order
    return sorted(rows, key=lambda r: r.vote_count, reverse=True)


def build_listing(
    rows: Iterable[PromptRow],
    query: str = "",
    category: str = ALL_CATEGORIES,
    threshold: float = DEFAULT_THRESHOLD,
) -> List[PromptRow]:
    listed = filter_by_category(rows, category)
    if query and query.strip():
        listed = FuzzyIndex(listed, SEARCH_KEYS, threshold=threshold).search(query)
    return sort_by_votes(listed)


async def load_listing(gateway, identity: Optional[SessionIdentity]) -> List[PromptRow]:
    """Read, annotate and normalize every prompt row. Raises GatewayError only if no source is readable."""
    rows: List[PromptRow] = []
    try:
        rows = await gateway.fetch_prompts_with_counts()
    except GatewayError as e:
        logger.warning(f"Falling back to prompts due to missing view: {e.message}")

    if not rows:
        rows = await gateway.fetch_prompts()
        for row in rows:
            row.vote_count = 0

    if identity:
        try:
            voted = await gateway.fetch_voted_prompt_ids(identity.id)
        except GatewayError as e:
            logger.warning(f"Could not read votes for {identity.id}: {e.message}")
            voted = set()
        for row in rows:
            row.voted = row.id in voted

    return normalize_rows(rows)


class ExploreView(View):
    def __init__(self, gateway, session, threshold: float = DEFAULT_THRESHOLD):
        super().__init__(gateway, session)
        self.threshold = threshold
        self.rows: List[PromptRow] = []
        self.error: Optional[str] = None
        self.loaded = False
        self._cards: Dict[str, VoteCard] = {}

    async def load(self) -> None:
        token = self._begin()
        self.loading = True
        try:
            rows = await load_listing(self.gateway, self.session.identity)
        except GatewayError as e:
            logger.error(f"Could not load prompts: {e.message}")
            if self._is_live(token):
                self.error = e.message
                self.loading = False
            else:
                self._discard("prompt listing")
            return
        if not self._is_live(token):
            self._discard("prompt listing")
            return
        self.rows = rows
        self.error = None
        self.loading = False
        self.loaded = True
        self._rebind_cards()

    def _rebind_cards(self) -> None:
        cards = {}
        rows = []
        for row in self.rows:
            card = self._cards.get(row.id)
            if card is None:
                card = VoteCard(row, self.gateway, self.session)
            elif card.pending:
                # the in-flight toggle settles on the row it started from
                row = card.row
            else:
                card.row = row
            cards[row.id] = card
            rows.append(row)
        self.rows = rows
        self._cards = cards

    def add_row(self, row: PromptRow) -> None:
        row.type = normalize_category(row.type)
        self.rows.append(row)
        self._cards[row.id] = VoteCard(row, self.gateway, self.session)

    def card(self, prompt_id: str) -> Optional[VoteCard]:
        return self._cards.get(prompt_id)

    def results(self, query: str = "", category: str = ALL_CATEGORIES) -> List[VoteCard]:
        return [self._cards[row.id] for row in build_listing(self.rows, query, category, self.threshold)]
