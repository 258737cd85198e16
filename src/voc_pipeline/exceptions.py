"""Custom exceptions for the VOC pipeline worker.

Per-source failures (resolution and fetching) are recoverable: the pipeline
records them against the source and moves on. Analysis failures are fatal to
the job that raised them.
"""


class VocPipelineError(Exception):
    """Base exception for all VOC pipeline errors.

    All custom exceptions in this module inherit from this base class,
    making it easy to catch every pipeline-specific error in one place.
    """

    pass


class ConfigurationError(VocPipelineError):
    """Raised when there's an error in configuration.

    Examples:
    - Invalid numeric setting in the environment
    - Unreadable YAML config overlay
    - SQLite database path that cannot be created
    """

    pass


class InvalidStateTransition(VocPipelineError):
    """Raised when a job attempts a transition its current state forbids."""

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")


class JobCancelledError(VocPipelineError):
    """Raised inside a handler whose job was already failed by the queue."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Job {job_id} was cancelled: {reason}")


class StorageError(VocPipelineError):
    """Raised when storage operations fail.

    Examples:
    - Failed to save a review batch
    - Failed to update a report row
    - Report not found for an update
    """

    pass


class SourceResolutionError(VocPipelineError):
    """Raised when a review source cannot be resolved or verified.

    Recoverable: the resolver records the platform as unverified and keeps
    going with the remaining platforms.

    Attributes:
        platform: Platform key the failure belongs to
    """

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(f"{platform}: {message}")


class FetchError(VocPipelineError):
    """Base class for a failed page retrieval.

    Attributes:
        url: The URL that could not be fetched
    """

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class FetchTimeout(FetchError):
    """Raised when a fetch exceeds its hard timeout."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, f"Timed out after {timeout:g}s fetching {url}")


class FetchHttpError(FetchError):
    """Raised when the remote server answers with a non-success status.

    A 200 page that is really an anti-bot interstitial is reported as 403
    with a ``reason``.

    Attributes:
        status: HTTP status code returned by the server or rendering proxy
        reason: Optional description (e.g. "CAPTCHA challenge detected")
    """

    def __init__(self, url: str, status: int, reason: str = None):
        self.status = status
        self.reason = reason
        message = f"HTTP {status} fetching {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(url, message)


class FetchNetworkError(FetchError):
    """Raised on connection-level failures (DNS, refused, TLS, render crash)."""

    pass


class AIProviderError(VocPipelineError):
    """Raised when the hosted model endpoint returns an error.

    Examples:
    - Unexpected HTTP status from the LiteLLM proxy
    - Empty completion payload
    """

    pass


class TransientError(AIProviderError):
    """Raised on timeouts or temporary connection failures to the model endpoint.

    Attributes:
        provider: Name of the provider or proxy that failed
    """

    def __init__(self, message: str, provider: str = "unknown"):
        self.provider = provider
        super().__init__(message)


class QuotaExhaustedError(AIProviderError):
    """Raised when the model endpoint reports a rate or budget limit.

    Attributes:
        provider: The provider that hit the limit
        reset_info: Optional hint about when the quota resets
    """

    def __init__(self, message: str, provider: str = "unknown", reset_info: str = None):
        self.provider = provider
        self.reset_info = reset_info
        super().__init__(message)


class ModelCallError(VocPipelineError):
    """Raised when the analysis model call fails. Fatal to the job.

    Examples:
    - Provider error or timeout
    - Response that is not valid JSON
    - Response JSON that is not an object
    """

    pass


class AnalysisSchemaError(VocPipelineError):
    """Raised when the model's JSON is missing required report sections. Fatal to the job.

    Attributes:
        missing_fields: Top-level report keys absent from the response
    """

    def __init__(self, missing_fields: list, message: str = None):
        self.missing_fields = list(missing_fields)
        super().__init__(
            message or f"Analysis response missing required fields: {', '.join(self.missing_fields)}"
        )
