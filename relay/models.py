from __future__ import annotations

import logging
from typing import List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]


def _coerce_record_id(value):
    # Record ids are interpolated into record-store queries, so only plain
    # record numbers are accepted.
    if value is None:
        return value
    if isinstance(value, bool):
        raise ValueError("chatRecordId must be a record number")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError("chatRecordId must be a record number")
    value = value.strip()
    if not value:
        return None
    if not value.isdigit() or int(value) == 0:
        raise ValueError("chatRecordId must be a record number")
    return value


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="'system', 'user' or 'assistant'")
    content: str


class ThreadChatInput(BaseModel):
    """ThreadReference mode: one message against a stored chat thread."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    chat_record_id: str = Field(..., alias="chatRecordId")
    message: str = Field(..., min_length=1)
    model: Optional[str] = None

    @field_validator("chat_record_id", mode="before")
    @classmethod
    def check_record_id(cls, value):
        return _coerce_record_id(value)


class MessageListInput(BaseModel):
    """MessageList mode: the caller supplies the whole conversation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    messages: Tuple[ChatTurn, ...] = Field(..., min_length=1)
    model: Optional[str] = None
    chat_record_id: Optional[str] = Field(None, alias="chatRecordId")

    @field_validator("chat_record_id", mode="before")
    @classmethod
    def check_record_id(cls, value):
        # Only a history target here; a bad one must not block the answer.
        try:
            return _coerce_record_id(value)
        except ValueError:
            logger.warning("Ignoring invalid chatRecordId in message list request")
            return None


ChatInput = Union[ThreadChatInput, MessageListInput]


class SessionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    payload: ChatInput
    model_name: str
    created_at: float


class ChatExchange(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_message: str
    ai_reply: str
    # Row id assigned by the record store; None for exchanges not yet written.
    row_id: Optional[str] = None


class ChatThread(BaseModel):
    id: str
    assistant_config: Optional[str] = None
    log: List[ChatExchange] = Field(default_factory=list)

    def with_exchange(self, exchange: ChatExchange) -> "ChatThread":
        return self.model_copy(update={"log": [*self.log, exchange]})


class ChatReply(BaseModel):
    reply: str
