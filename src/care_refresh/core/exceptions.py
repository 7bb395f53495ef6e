class PipelineError(Exception):
    """Base pipeline exception."""


class ProviderRequestError(PipelineError):
    """Raised when a source request failed after retries."""


class ProviderTemporaryError(ProviderRequestError):
    """Raised when a source request can be retried."""


class ValidationError(PipelineError):
    """Raised when a record or batch is invalid."""


class ProviderNormalizationError(ValidationError):
    """Raised when a source payload shape cannot be parsed."""


class GenerationParseError(ProviderNormalizationError):
    """Raised when generated text does not resolve to a JSON array."""


class ConfigurationError(PipelineError):
    """Raised when an operation needs configuration that is not set."""


class PersistenceError(PipelineError):
    """Raised when a replacement transaction was rolled back."""
