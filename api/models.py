from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

# Type aliases
NarrativeSource = Literal['generated', 'rule-based']


class FavoriteToggleRequest(BaseModel):
    drug1: str = Field(..., validation_alias=AliasChoices("drug1", "a", "d1"))
    drug2: str = Field(..., validation_alias=AliasChoices("drug2", "b", "d2"))

    @field_validator("drug1", "drug2", mode="before")
    @classmethod
    def _strip_ids(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("substance ids must be non-empty strings")
        return value.strip()


class NarrativeResponse(BaseModel):
    source: NarrativeSource
    text: str
    readout: str
    narrative: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = False
