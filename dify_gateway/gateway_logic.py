import asyncio
import logging
from collections.abc import AsyncIterator, Mapping

import httpx

from dify_gateway.errors import BackendError, UnsupportedModelError
from dify_gateway.models import (
    AssistantMessage,
    BackendRequest,
    BackendResponse,
    ChatCompletion,
    ChatCompletionChunk,
    ChatRequest,
    Choice,
    DeltaMessage,
    StreamChoice,
    Usage,
)

logger = logging.getLogger(__name__)

HISTORY_HEADER = "Chat history:"
RESPOND_INSTRUCTION = "Please respond to the last message."
SSE_DONE = "data: [DONE]\n\n"


def to_backend_request(request: ChatRequest, application_name: str) -> BackendRequest:
    """
    Flatten the message history into a single query for the backend.

    The backend accepts one string per turn, so every message becomes a
    "<role>: <content>" line followed by an instruction to answer the last one.
    Generation parameters (temperature, max_tokens, ...) and the stream flag
    are not forwarded; the backend is always asked for a blocking answer.
    """
    history = "\n".join(f"{msg.role}: {msg.content}" for msg in request.messages)
    query = f"{HISTORY_HEADER}\n{history}\n\n{RESPOND_INSTRUCTION}"

    return BackendRequest(
        query=query,
        inputs={},
        user=application_name,
        response_mode="blocking",
    )


def to_chat_completion(response: BackendResponse, model: str) -> ChatCompletion:
    """Build OpenAI-style response shape from a backend answer."""
    usage = response.metadata.usage

    return ChatCompletion(
        id=response.id,
        # created_at is in milliseconds; truncate to whole seconds
        created=response.created_at // 1000,
        model=model,
        choices=[
            Choice(
                index=0,
                message=AssistantMessage(content=response.answer),
                finish_reason="stop",
            )
        ],
        usage=Usage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        ),
    )


def to_stream_chunks(completion: ChatCompletion) -> list[ChatCompletionChunk]:
    """
    Split a finished completion into word-sized stream chunks.

    Words are split on the ASCII space only, keeping empty words, so joining
    every delta in order gives back the original content exactly.
    """
    content = completion.choices[0].message.content
    if not content:
        return []

    words = content.split(" ")
    last = len(words) - 1

    return [
        ChatCompletionChunk(
            id=completion.id,
            created=completion.created,
            model=completion.model,
            choices=[
                StreamChoice(
                    index=0,
                    delta=DeltaMessage(content=word if i == 0 else f" {word}"),
                    finish_reason="stop" if i == last else None,
                )
            ],
        )
        for i, word in enumerate(words)
    ]


def format_sse(chunk: ChatCompletionChunk) -> str:
    return f"data: {chunk.model_dump_json()}\n\n"


async def stream_events(chunks: list[ChatCompletionChunk]) -> AsyncIterator[str]:
    """Yield one SSE frame per chunk, then the [DONE] marker."""
    for chunk in chunks:
        yield format_sse(chunk)
        await asyncio.sleep(0)  # yield to event loop
    yield SSE_DONE


async def call_backend(
    client: httpx.AsyncClient,
    endpoint: str,
    credential: str,
    payload: BackendRequest,
    timeout: float,
) -> BackendResponse:
    """Send a blocking chat-messages request. Raises BackendError on any failure."""
    url = f"{endpoint.rstrip('/')}/chat-messages"
    try:
        backend_response = await client.post(
            url,
            json=payload.model_dump(exclude_none=True),
            headers={"Authorization": f"Bearer {credential}"},
            timeout=timeout,
        )
        backend_response.raise_for_status()
        return BackendResponse.model_validate(backend_response.json())
    except httpx.HTTPStatusError as e:
        logger.error(f"Backend returned {e.response.status_code} for {url}")
        raise BackendError(f"backend returned status {e.response.status_code}") from e
    except httpx.HTTPError as e:
        logger.error(f"Error calling backend at {url}: {type(e).__name__}: {e}")
        raise BackendError(f"backend request failed: {type(e).__name__}") from e
    except ValueError as e:
        # invalid JSON or a body that does not match BackendResponse
        logger.error(f"Malformed backend response from {url}: {e}")
        raise BackendError("malformed backend response") from e


async def complete(
    client: httpx.AsyncClient,
    request: ChatRequest,
    credentials: Mapping[str, str],
    endpoint: str,
    application_name: str,
    timeout: float,
) -> ChatCompletion:
    """Translate, call the backend with the model's credential, translate back."""
    credential = credentials.get(request.model)
    if credential is None:
        raise UnsupportedModelError(request.model)

    payload = to_backend_request(request, application_name)
    backend_resp = await call_backend(
        client=client,
        endpoint=endpoint,
        credential=credential,
        payload=payload,
        timeout=timeout,
    )
    return to_chat_completion(backend_resp, request.model)
