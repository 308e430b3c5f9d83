"""
Record Schemas for Prompt Hub

Each Pydantic model maps to a table or view in the hosted Postgres store.
- Profile -> "profiles"
- Prompt -> "prompts"
- Vote -> "prompt_votes"
- PromptRow -> "prompts_with_counts" (read-only view)
- ProfileMetrics -> "profile_metrics" (read-only view)
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

PROMPT_CATEGORIES = (
    "Global Instruction",
    "Learning",
    "Persona",
    "Tool Setup",
    "Evaluation",
    "Other",
)
ALL_CATEGORIES = "All"
DEFAULT_CATEGORY = "Learning"

ThemeMode = Literal["system", "light", "dark"]
Theme = Literal["light", "dark"]


class Profile(BaseModel):
    id: str = Field(..., description="Same id as the auth user")
    display_name: Optional[str] = Field(None, description="Public name (optional)")
    created_at: Optional[datetime] = None
    display_name_last_changed_at: Optional[datetime] = None


class Prompt(BaseModel):
    id: str
    user_id: str = Field(..., description="Owner id")
    title: str = Field(..., description="Short prompt name")
    body: str = Field(..., description="Full prompt text")
    type: str = Field(DEFAULT_CATEGORY, description="Category label")
    tags: List[str] = Field(default_factory=list, description="Lowercase free-form tags")
    created_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, v):
        return v or []


class PromptRow(Prompt):
    vote_count: int = Field(0, ge=0, description="Total votes from the counts view")
    author_display_name: Optional[str] = None
    voted: bool = Field(False, description="Whether the viewer has voted")

    @field_validator("vote_count", mode="before")
    @classmethod
    def _null_count(cls, v):
        return v or 0


class Vote(BaseModel):
    prompt_id: str = Field(..., description="Target prompt id")
    user_id: str = Field(..., description="Voter id")
    created_at: Optional[datetime] = None


class ProfileMetrics(BaseModel):
    user_id: str
    prompts_created: int = 0
    votes_received: int = 0
    votes_given: int = 0
    prompts_percentile: float = Field(0, ge=0, le=100)
    votes_received_percentile: float = Field(0, ge=0, le=100)
    votes_given_percentile: float = Field(0, ge=0, le=100)


class SessionIdentity(BaseModel):
    id: str
    email: Optional[str] = None
