"""Speech synthesis exceptions.

Every failure surfaced by cogspeak is a ``SpeechError`` subclass so callers
can tell validation, configuration, engine and capacity problems apart.
"""


class SpeechError(Exception):
    """Base exception for speech-synthesis errors."""

    def __init__(
        self, message: str, original_error: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.attempts = 1


class ValidationError(SpeechError, ValueError):
    """Raised when input text or voice settings violate a validation rule.

    Attributes:
        rule: Machine-readable name of the violated rule (e.g. "text_too_long")
        field: Name of the offending field
    """

    def __init__(self, message: str, rule: str, field: str | None = None) -> None:
        super().__init__(message)
        self.rule = rule
        self.field = field


class ConfigurationError(SpeechError, ValueError):
    """Raised when speech settings are invalid.

    Configuration errors are raised at load or construction time and never
    reach the dispatch path.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.field = field


class EngineError(SpeechError):
    """Exception raised by a synthesis backend.

    Attributes:
        engine: Name of the engine that failed
        retryable: Whether the retry policy may re-attempt the call
        status_code: HTTP status for API-backed engines
        attempts: Number of attempts made before this error was surfaced
    """

    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        engine: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.engine = engine
        self.retryable = self.default_retryable if retryable is None else retryable
        self.status_code = status_code

    def __str__(self) -> str:
        if self.attempts > 1:
            return f"{self.message} (after {self.attempts} attempts)"
        return self.message


class EngineAPIError(EngineError):
    """Exception raised for API communication errors.

    Retryability follows the status code when not given explicitly:
    - no status (connection failure), 408, 429 and 5xx are transient
    - any other 4xx means the request itself was rejected
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        engine: str | None = None,
        retryable: bool | None = None,
        original_error: Exception | None = None,
    ) -> None:
        if retryable is None:
            retryable = is_transient_status(status_code)
        super().__init__(
            message,
            engine=engine,
            retryable=retryable,
            status_code=status_code,
            original_error=original_error,
        )


class EngineAuthError(EngineError):
    """Exception raised for authentication failures.

    This typically occurs when:
    - API key is missing or invalid
    - Account has insufficient credits
    - API key permissions are insufficient
    """

    def __init__(
        self,
        message: str,
        *,
        engine: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            engine=engine,
            retryable=False,
            status_code=status_code,
            original_error=original_error,
        )


class EngineTimeoutError(EngineError):
    """Exception raised when a single synthesis attempt exceeds its deadline."""

    default_retryable = True


class EngineUnavailableError(EngineError):
    """Exception raised when the selected engine cannot run on this host."""


class ResourceExhausted(SpeechError):
    """Raised when the request queue or an audio size budget is exhausted.

    Attributes:
        resource: Which resource ran out ("queue", "audio", ...)
    """

    def __init__(self, message: str, resource: str) -> None:
        super().__init__(message)
        self.resource = resource


def is_transient_status(status_code: int | None) -> bool:
    """Return True when an HTTP status (or its absence) is worth retrying."""
    if status_code is None:
        return True
    return status_code in (408, 429) or 500 <= status_code <= 599
