from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class MatchResult(BaseModel):
    """Verdict on which skill (if any) a user utterance belongs to."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    matched: bool = False
    skill_name: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return min(max(float(value), 0.0), 1.0)
        return value

    @model_validator(mode="after")
    def unmatched_is_empty(self) -> MatchResult:
        if not self.matched or not self.skill_name:
            self.matched = False
            self.skill_name = ""
            self.confidence = 0.0
        return self

    @classmethod
    def no_match(cls, reasoning: str = "") -> MatchResult:
        return cls(matched=False, reasoning=reasoning)
