from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_HISTORY_TURNS = 10

TimeRange = Literal["calendar_month", "last_30_days", "this_quarter", "all_time"]


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ResolvedFilters(BaseModel):
    time_range: TimeRange = "all_time"


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    resolved: ResolvedFilters = Field(default_factory=ResolvedFilters)
    history: List[ChatTurn] = Field(default_factory=list)

    @field_validator("resolved", mode="before")
    @classmethod
    def default_resolved(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("history", mode="before")
    @classmethod
    def default_history(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("history")
    @classmethod
    def keep_recent_turns(cls, v: List[ChatTurn]) -> List[ChatTurn]:
        return v[-MAX_HISTORY_TURNS:]


class Visualization(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["line", "bar", "table"] = "table"
    x_key: Optional[str] = Field(default=None, alias="xKey")
    y_key: Optional[str] = Field(default=None, alias="yKey")


class AnswerOutput(BaseModel):
    kind: Literal["answer"] = "answer"
    sql: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    insights: List[str] = Field(default_factory=list)
    followups: List[str] = Field(default_factory=list)
    visualization: Optional[Visualization] = None


class ClarifyOutput(BaseModel):
    kind: Literal["clarify"] = "clarify"
    clarifying_question: str = Field(..., min_length=1)
    options: List[str] = Field(default_factory=list)


ModelOutput = Union[AnswerOutput, ClarifyOutput]


class QueryResult(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    fields: List[str] = Field(default_factory=list)


class AnswerResponse(BaseModel):
    ok: Literal[True] = True
    type: Literal["answer"] = "answer"
    sql: str
    answer: str
    insights: List[str]
    followups: List[str]
    visualization: Visualization
    result: QueryResult


class ClarifyResponse(BaseModel):
    ok: Literal[True] = True
    type: Literal["clarify"] = "clarify"
    clarifying_question: str
    options: List[str]


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str


ChatResponse = Union[AnswerResponse, ClarifyResponse, ErrorResponse]


def to_envelope(response: ChatResponse) -> Dict[str, Any]:
    """JSON-ready dict of a response; absent xKey/yKey are omitted."""
    payload = response.model_dump(mode="json", by_alias=True)
    if isinstance(response, AnswerResponse):
        payload["visualization"] = {
            key: value for key, value in payload["visualization"].items() if value is not None
        }
    return payload


__all__ = [
    "MAX_HISTORY_TURNS",
    "ChatTurn",
    "ResolvedFilters",
    "ChatRequest",
    "Visualization",
    "AnswerOutput",
    "ClarifyOutput",
    "ModelOutput",
    "QueryResult",
    "AnswerResponse",
    "ClarifyResponse",
    "ErrorResponse",
    "ChatResponse",
    "to_envelope",
]
