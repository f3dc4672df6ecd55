"""Stand-in for the Dify chat-messages API, for local runs and integration tests."""
import os
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse

from dify_gateway.models import BackendRequest

app = FastAPI()

# Config from environment
MOCK_PORT = int(os.getenv("MOCK_PORT", "8081"))
MOCK_ANSWER = os.getenv("MOCK_ANSWER", "I am a mock assistant.")


def estimate_tokens(text: str) -> int:
    """Approximate token count using word splitting."""
    return len(text.split())


@app.get("/healthz")
async def healthz():
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/v1/chat-messages")
async def chat_messages(
    request: BackendRequest,
    authorization: Optional[str] = Header(None),
):
    """
    Mock backend endpoint that answers every blocking query with MOCK_ANSWER.
    Requires a bearer token, like the real API.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return JSONResponse(status_code=401, content={"code": "unauthorized", "message": "Missing API key"})

    prompt_tokens = estimate_tokens(request.query)
    completion_tokens = estimate_tokens(MOCK_ANSWER)

    return {
        "event": "message",
        "id": str(uuid.uuid4()),
        "conversation_id": request.conversation_id or str(uuid.uuid4()),
        "mode": "chat",
        "answer": MOCK_ANSWER,
        "created_at": int(time.time() * 1000),
        "metadata": {
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            }
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=MOCK_PORT)
