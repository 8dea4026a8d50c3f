"""Error taxonomy for round generation, storage and winner reporting."""


class RoundEngineError(Exception):
    """Base class for every error raised by daily_rounds."""


class IngestionError(RoundEngineError):
    """The comment feed could not be read.

    Never fatal to round generation: the round falls back to training mode and
    ``reason`` is recorded as the round's fallback reason.
    """

    reason = "feed_error"


class FeedAuthError(IngestionError):
    """Missing or rejected access token."""

    reason = "feed_auth"


class FeedUnavailableError(IngestionError):
    """Timeout, connection failure, rate limiting or a provider-side error."""

    reason = "feed_unavailable"


class FeedPayloadError(IngestionError):
    """The provider answered with something we could not interpret."""

    reason = "feed_payload"


class PersistenceError(RoundEngineError):
    """The round store is unavailable or rejected a write."""


class ValidationError(RoundEngineError):
    """Caller input was rejected (bad slot, bad capacity, missing round)."""


class RoundNotFoundError(ValidationError):
    """No round is stored for the requested date."""
