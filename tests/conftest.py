"""Pytest configuration and fixtures."""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from dify_gateway.app import create_app
from dify_gateway.config import GatewayConfig


def dify_response(answer="I am an AI assistant created by OpenAI.", **overrides):
    body = {
        "event": "message",
        "id": "chatcmpl-123",
        "conversation_id": "conv-1",
        "mode": "chat",
        "answer": answer,
        "created_at": 1677652288000,
        "metadata": {
            "usage": {
                "prompt_tokens": 9,
                "completion_tokens": 12,
                "total_tokens": 21,
                "total_price": "0.0001",
            }
        },
    }
    body.update(overrides)
    return body


class FakeBackend:
    """httpx.MockTransport handler that records requests and replays a canned answer."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body = dify_response()
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def gateway_config():
    return GatewayConfig(
        application_name="test-app",
        dify_api_endpoint="https://test-dify-api.com/v1",
        cors_origin="*",
        models={"model-1": "test-api-key-1", "model-2": "test-api-key-2"},
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(gateway_config, backend):
    """Gateway test client whose backend calls go to the FakeBackend."""
    app = create_app(gateway_config, transport=httpx.MockTransport(backend))
    with TestClient(app) as test_client:
        yield test_client
