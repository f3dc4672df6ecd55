class GatewayError(Exception):
    """Base exception for gateway errors."""
    pass


class UnsupportedModelError(GatewayError):
    """Requested model has no configured credential."""

    def __init__(self, model: str):
        super().__init__(f"Unsupported model: {model}")
        self.model = model


class BackendError(GatewayError):
    """Backend call failed (transport, non-2xx status or malformed body)."""
    pass


class ConfigurationError(GatewayError):
    """Configuration cannot be used to serve requests."""
    pass
