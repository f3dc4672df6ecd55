import logging
import os
import uuid
from contextlib import asynccontextmanager
from types import MappingProxyType
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from dify_gateway.config import GatewayConfig, load_config
from dify_gateway.errors import BackendError, UnsupportedModelError
from dify_gateway.gateway_logic import complete, stream_events, to_stream_chunks
from dify_gateway.models import ChatRequest

logger = logging.getLogger(__name__)

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

INTERNAL_ERROR = {"error": "Internal server error"}


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _format_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def resolve_request_id(request: Request) -> str:
    """Get request ID from headers or generate UUID."""
    return request.headers.get("X-Request-ID") or request.headers.get("Request-Id") or str(uuid.uuid4())


def create_app(
    config: Optional[GatewayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the gateway application.
    Loads configuration when none is given and refuses to start if it is unusable.
    """
    if config is None:
        config = load_config()
    config.validate_for_serving()

    credentials = MappingProxyType(dict(config.models))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan: create and cleanup httpx client."""
        app.state.client = httpx.AsyncClient(transport=transport, timeout=config.backend_timeout)
        logger.info(
            f"{config.application_name} forwarding to {config.dify_api_endpoint} "
            f"for models: {', '.join(sorted(credentials))}"
        )
        yield
        await app.state.client.aclose()

    app = FastAPI(title="Dify Gateway", lifespan=lifespan)
    app.state.config = config
    app.state.credentials = credentials

    origins = [o.strip() for o in config.cors_origin.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        req_id = resolve_request_id(request)
        logger.info(f"[{req_id}] rejected invalid request")
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid request: {_format_validation_error(exc)}"},
            headers={"X-Request-ID": req_id},
        )

    @app.get("/healthz")
    async def healthz():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.post("/v1/chat/completions")
    async def chat_completions(request: ChatRequest, http_request: Request):
        """
        Handle chat completion requests.
        The backend answer is always fetched in full; streaming replays it word by word.
        """
        req_id = resolve_request_id(http_request)
        headers = {"X-Request-ID": req_id}
        logger.info(
            f"[{req_id}] chat completion: model={request.model}, "
            f"messages={len(request.messages)}, stream={request.stream}"
        )

        try:
            completion = await complete(
                client=http_request.app.state.client,
                request=request,
                credentials=http_request.app.state.credentials,
                endpoint=config.dify_api_endpoint,
                application_name=config.application_name,
                timeout=config.backend_timeout,
            )
            chunks = to_stream_chunks(completion) if request.stream else None
        except UnsupportedModelError as e:
            logger.warning(f"[{req_id}] {e}")
            return JSONResponse(status_code=400, content={"error": str(e)}, headers=headers)
        except BackendError as e:
            # cause already logged by call_backend
            logger.error(f"[{req_id}] chat completion failed: {e}")
            return JSONResponse(status_code=500, content=INTERNAL_ERROR, headers=headers)
        except Exception:
            logger.exception(f"[{req_id}] chat completion failed")
            return JSONResponse(status_code=500, content=INTERNAL_ERROR, headers=headers)

        if chunks is not None:
            return StreamingResponse(
                stream_events(chunks),
                media_type="text/event-stream",
                headers=headers,
            )

        return JSONResponse(content=completion.model_dump(), headers=headers)

    return app


def main() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run(create_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    main()
