"""Error taxonomy for techwire.

Provider errors never cross the cascade boundary: the cascade classifies
them and moves on to the next provider. Storage errors never cross the
cache boundary for callers that treat caching as best-effort.
"""


class TechWireError(Exception):
    """Base class for all techwire errors."""


class ProviderError(TechWireError):
    """A single provider attempt failed."""

    kind = "provider"

    def __init__(self, message: str = "", provider: str = ""):
        super().__init__(message)
        self.provider = provider


class TransientProviderError(ProviderError):
    """Timeout, 5xx, or rate-limited 4xx."""

    kind = "transient"


class ConfigurationError(ProviderError):
    """The provider is missing credentials or configuration."""

    kind = "configuration"


class ValidationError(ProviderError):
    """Payload present but empty, too short, or otherwise unusable."""

    kind = "validation"


class MalformedResponseError(ValidationError):
    """Response body could not be parsed or did not match its schema."""

    kind = "malformed"


class StorageError(TechWireError):
    """Cache write failed (artifact or index)."""


class AggregationError(TechWireError):
    """No source could be reached at all."""
