from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


# --- Request ---
class Message(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model: str
    messages: list[Message] = Field(..., min_length=1)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    n: Optional[int] = None
    stop: Optional[str | list[str]] = None
    functions: Optional[list[dict[str, Any]]] = None
    function_call: Optional[str | dict[str, str]] = None
    stream: bool = False


# --- Backend (Dify chat-messages) ---
class BackendRequest(BaseModel):
    query: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    user: str
    response_mode: Literal["blocking"] = "blocking"
    conversation_id: Optional[str] = None


class BackendUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class BackendMetadata(BaseModel):
    usage: BackendUsage


class BackendResponse(BaseModel):
    id: str
    answer: str
    created_at: int
    metadata: BackendMetadata


# --- Response ---
class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Optional[str]


class Choice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: str = "stop"


class Usage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletion(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


# --- Streaming Response (SSE chunks) ---
class DeltaMessage(BaseModel):
    content: str


class StreamChoice(BaseModel):
    index: int = 0
    delta: DeltaMessage
    finish_reason: Optional[str] = None


class ChatCompletionChunk(BaseModel):
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[StreamChoice]
