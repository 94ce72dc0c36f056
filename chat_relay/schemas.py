import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_uuid(value: str) -> bool:
    return bool(UUID_RE.match(value))


class QuestionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    question: str = Field(..., min_length=1, description="The user's question")
    session_id: Optional[str] = Field(
        None,
        alias="sessionId",
        description="Existing session id to continue a conversation (optional)",
    )

    @field_validator("session_id")
    @classmethod
    def session_id_must_be_uuid(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not is_uuid(v):
            raise ValueError("sessionId must be a valid UUID")
        return v.lower()


class QuestionResponse(BaseModel):
    sessionId: str
    message: str
