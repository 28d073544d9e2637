"""Chat history and stream protocol models."""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedbackType(str, Enum):
    """User feedback on an answer."""

    NONE = "NONE"
    GOOD = "GOOD"
    BAD = "BAD"


class Citation(CamelModel):
    """Deduplicated retrieval result surfaced to the caller."""

    text: str
    file_name: str
    document_id: str
    score: float


class ChatSession(CamelModel):
    """Session header."""

    session_id: str
    owner_id: str
    session_name: str
    created_at: datetime
    last_message_at: datetime
    updated_at: Optional[datetime] = None


class ChatMessage(CamelModel):
    """One question/answer exchange."""

    history_id: str
    session_id: str
    owner_id: str
    user_query: str
    ai_response: str
    source_documents: List[Citation] = Field(default_factory=list)
    feedback: FeedbackType = FeedbackType.NONE
    feedback_comment: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class MessagePage(CamelModel):
    """A page of messages with an opaque cursor for the next one."""

    session_id: str
    messages: List[ChatMessage]
    next_cursor: Optional[str] = None


class TextUIPart(BaseModel):
    """Text part of a UI message."""

    type: Literal["text"]
    text: str


class SourceDocumentUIPart(CamelModel):
    """Source document part of a UI message."""

    type: Literal["source-document"]
    source_id: str
    media_type: str
    title: str
    filename: Optional[str] = None


class UIMessage(BaseModel):
    """Message sent by the chat client."""

    id: Optional[str] = None
    role: Literal["user", "assistant"]
    parts: List[Union[TextUIPart, SourceDocumentUIPart]] = Field(default_factory=list)


class ChatStreamRequest(CamelModel):
    """Body of POST /chat/stream."""

    messages: List[UIMessage]
    session_id: str = Field(..., min_length=1, max_length=100)
    redo_history_id: Optional[str] = Field(None, max_length=100)
