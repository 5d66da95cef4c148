"""
Integration error types.
"""


class IntegrationError(Exception):
    """Base class for connector failures."""


class TokenMissingError(IntegrationError):
    """Raised when an authenticated call is made before a token is set."""

    def __init__(self, message: str = "No token set for API request"):
        super().__init__(message)


class ProviderHTTPError(IntegrationError):
    """A provider endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, body: str):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenExchangeError(ProviderHTTPError):
    """Authorization-code exchange or token refresh was rejected."""


class ApiRequestError(ProviderHTTPError):
    """Authenticated API request was rejected."""


class UnknownIntegrationError(IntegrationError, ValueError):
    """Integration type outside the supported set."""

    def __init__(self, integration_type: str):
        super().__init__(f"Unknown integration type: {integration_type}")
        self.integration_type = integration_type


class UnsupportedOperationError(IntegrationError):
    """The provider does not support this operation through its API."""
