import logging

from database import GatewayError
from schemas import PromptRow

logger = logging.getLogger(__name__)


class VoteCard:
    """
    Vote button state for one prompt card.

    The local row is only changed after the store confirms the write, so a
    failed toggle leaves voted/vote_count exactly as they were and nothing
    has to be rolled back. `pending` blocks a second toggle on the same card
    until the first one settles.
    """

    def __init__(self, row: PromptRow, gateway, session):
        self.row = row
        self.gateway = gateway
        self.session = session
        self.pending = False

    @property
    def can_vote(self) -> bool:
        return self.session.identity is not None and not self.pending

    async def toggle(self) -> bool:
        """Flip the viewer's vote. Returns True when the store accepted the change."""
        identity = self.session.identity
        if identity is None or self.pending:
            return False

        row = self.row
        self.pending = True
        try:
            if row.voted:
                await self.gateway.delete_vote(row.id, identity.id)
                row.voted = False
                row.vote_count -= 1
            else:
                await self.gateway.insert_vote(row.id, identity.id)
                row.voted = True
                row.vote_count += 1
        except GatewayError as e:
            logger.error(f"Vote toggle failed for prompt {row.id}: {e.message}")
            return False
        finally:
            self.pending = False
        return True

    def follow(self, source: PromptRow) -> None:
        """Apply a vote confirmed through another card for the same prompt."""
        if self.pending or self.row.voted == source.voted:
            return
        self.row.voted = source.voted
        self.row.vote_count += 1 if source.voted else -1

    def to_dict(self) -> dict:
        data = self.row.model_dump(mode="json")
        data["can_vote"] = self.can_vote
        return data
