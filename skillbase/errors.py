"""Error taxonomy shared by every skillbase component."""


class SkillbaseError(Exception):
    """Base class for all errors raised by skillbase."""

    default_message = "skillbase operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SkillbaseError, ValueError):
    """Caller input is malformed. Never retried."""

    default_message = "Invalid input"


class InvalidTransitionError(SkillbaseError):
    """A status change that the state model does not allow."""

    default_message = "Invalid status transition"


class AuthorizationError(SkillbaseError):
    """The acting user lacks the capability an operation requires."""

    default_message = "Not authorized"


class ProviderError(SkillbaseError):
    """The LLM provider rejected a request for a non-throttling reason."""

    default_message = "The language model provider rejected the request"


class RateLimited(SkillbaseError):
    """Provider throttling persisted after every allowed retry."""

    def __init__(self, attempts: int, message: str | None = None):
        self.attempts = attempts
        super().__init__(
            message
            or f"Rate limited by the language model provider after {attempts} attempt(s)"
        )


class PersistenceDegraded(SkillbaseError):
    """The store backing settings, logs or usage records is unreachable."""

    default_message = "Persistence backend unavailable"


# ---------------------------------------------------------------------------
# Transient provider signals, raised by LLM clients and consumed by the
# answer generator's retry loop.
# ---------------------------------------------------------------------------


class TransientProviderError(SkillbaseError):
    default_message = "Transient provider failure"


class ProviderRateLimitResponse(TransientProviderError):
    default_message = "Provider responded with a rate-limit error"


class ProviderTimeout(TransientProviderError):
    default_message = "Provider call timed out"
