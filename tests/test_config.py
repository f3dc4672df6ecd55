"""Tests for configuration loading."""
from unittest.mock import patch

import pytest

from dify_gateway.config import GatewayConfig, load_config
from dify_gateway.errors import ConfigurationError

ENV_VARS = ("APPLICATION_NAME", "DIFY_API_ENDPOINT", "DIFY_API_KEY", "CORS_ORIGIN", "BACKEND_TIMEOUT")

CONFIG_YAML = """\
application_name: test-app
dify_api_endpoint: https://test-dify-api.com/v1
cors_origin: "*"
models:
  model-1: test-api-key-1
  model-2: test-api-key-2
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS + ("CONFIG_PATH",):
        monkeypatch.delenv(name, raising=False)


def test_loads_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)

    with patch("dify_gateway.config.load_dotenv") as load_dotenv:
        config = load_config(path)

    assert config == GatewayConfig(
        application_name="test-app",
        dify_api_endpoint="https://test-dify-api.com/v1",
        cors_origin="*",
        models={"model-1": "test-api-key-1", "model-2": "test-api-key-2"},
        backend_timeout=30.0,
    )
    load_dotenv.assert_not_called()


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "gateway.yaml"
    path.write_text(CONFIG_YAML + "backend_timeout: 5\n")
    monkeypatch.setenv("CONFIG_PATH", str(path))

    config = load_config()

    assert config.backend_timeout == 5.0
    assert config.application_name == "test-app"


def test_falls_back_to_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("APPLICATION_NAME", "env-app")
    monkeypatch.setenv("DIFY_API_ENDPOINT", "https://env-dify-api.com/v1")
    monkeypatch.setenv("DIFY_API_KEY", "env-api-key")
    monkeypatch.setenv("CORS_ORIGIN", "http://localhost:3000")

    with patch("dify_gateway.config.load_dotenv") as load_dotenv:
        config = load_config(tmp_path / "missing.yaml")

    assert config.model_dump() == {
        "application_name": "env-app",
        "dify_api_endpoint": "https://env-dify-api.com/v1",
        "cors_origin": "http://localhost:3000",
        "models": {"default-model": "env-api-key"},
        "backend_timeout": 30.0,
    }
    load_dotenv.assert_called_once()


def test_environment_defaults(tmp_path):
    with patch("dify_gateway.config.load_dotenv"):
        config = load_config(tmp_path / "missing.yaml")

    assert config.model_dump() == {
        "application_name": "default-app",
        "dify_api_endpoint": "",
        "cors_origin": "*",
        "models": {"default-model": ""},
        "backend_timeout": 30.0,
    }
    with pytest.raises(ConfigurationError):
        config.validate_for_serving()


def test_yaml_must_be_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    config = load_config(path)

    assert config.models == {}
    with pytest.raises(ConfigurationError):
        config.validate_for_serving()


def test_valid_config_passes_validation():
    config = GatewayConfig(dify_api_endpoint="https://dify.example/v1", models={"m": "k"})

    config.validate_for_serving()


def test_config_is_frozen():
    config = GatewayConfig(dify_api_endpoint="https://dify.example/v1", models={"m": "k"})

    with pytest.raises(ValueError):
        config.dify_api_endpoint = "https://elsewhere.example"


@pytest.mark.parametrize(
    "text",
    [
        "models: [unclosed\n",
        "dify_api_endpoint: https://dify.example/v1\nmodels:\n",
        "dify_api_endpoint: https://dify.example/v1\nmodels:\n  1: key\n",
        "dify_api_endpoint: https://dify.example/v1\nbackend_timeout: abc\n",
        "dify_api_endpoint: dify.example/v1\n",
    ],
    ids=["broken-yaml", "null-models", "numeric-model-name", "bad-timeout", "endpoint-without-scheme"],
)
def test_bad_yaml_values_raise_configuration_error(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_bad_environment_timeout_raises_configuration_error(tmp_path, monkeypatch):
    monkeypatch.setenv("BACKEND_TIMEOUT", "soon")

    with patch("dify_gateway.config.load_dotenv"):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "missing.yaml")


def test_environment_timeout_is_parsed(tmp_path, monkeypatch):
    monkeypatch.setenv("BACKEND_TIMEOUT", "12.5")

    with patch("dify_gateway.config.load_dotenv"):
        config = load_config(tmp_path / "missing.yaml")

    assert config.backend_timeout == 12.5
