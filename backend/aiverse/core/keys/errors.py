"""Key pool error taxonomy."""


class KeyPoolError(Exception):
    """Base class for key pool errors."""


class KeyValidationError(KeyPoolError):
    """Raw input is not a plausible credential for the provider."""


class DuplicateKeyError(KeyPoolError):
    """The (provider, secret) pair is already stored."""


class NotFoundError(KeyPoolError):
    """No key record exists with the given id."""

    def __init__(self, key_id: int):
        super().__init__(f"API key {key_id} not found")
        self.key_id = key_id


class ProviderError(KeyPoolError):
    """A liveness probe against the provider failed."""

    kind = "provider_error"


class ProviderAuthError(ProviderError):
    kind = "auth"


class ProviderRateLimitError(ProviderError):
    kind = "rate_limited"


class ProviderNetworkError(ProviderError):
    kind = "network"


class ProviderTimeoutError(ProviderError):
    kind = "timeout"


class ProviderResponseError(ProviderError):
    """Unexpected status or a body that could not be understood."""

    kind = "bad_response"
