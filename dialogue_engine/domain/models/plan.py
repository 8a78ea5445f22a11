"""Interview plan models.

A plan is authored elsewhere and handed to the engine read-only; it is
frozen so nothing in a turn can mutate it.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Topic(BaseModel):
    """One unit of the interview plan."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(description="Internal topic title, never shown verbatim")
    cue: str = Field(
        default="",
        description="Natural-language description used in prompts instead of the label",
    )
    sub_goals: List[str] = Field(default_factory=list)
    max_turns: int = Field(default=3, ge=1, description="Assistant turns budget")

    def sub_goal_for_turn(self, turn_in_topic: int) -> Optional[str]:
        """Sub-goal to pursue on the given 0-based turn of this topic."""
        if not self.sub_goals:
            return None
        return self.sub_goals[turn_in_topic % len(self.sub_goals)]


class CandidateField(BaseModel):
    """A contact/profile field to collect after the interview."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    required: bool = True


class InterviewPlan(BaseModel):
    """Ordered topics plus data-collection settings."""

    model_config = ConfigDict(frozen=True)

    topics: List[Topic] = Field(min_length=1)
    language: str = Field(default="it", description="it or en")
    max_duration_minutes: float = Field(default=15.0, gt=0)
    candidate_fields: List[CandidateField] = Field(default_factory=list)
    data_collection_enabled: bool = True
    extension_preview_hints: List[str] = Field(
        default_factory=list,
        description="Concrete continuation hints for the extension offer",
    )

    @field_validator("language")
    @classmethod
    def normalize_language(cls, v: str) -> str:
        return (v or "it").strip().lower()

    @property
    def collects_data(self) -> bool:
        return self.data_collection_enabled and bool(self.candidate_fields)

    @property
    def max_duration_seconds(self) -> float:
        return self.max_duration_minutes * 60.0

    def topic_at(self, index: int) -> Optional[Topic]:
        if 0 <= index < len(self.topics):
            return self.topics[index]
        return None
