"""Exception taxonomy shared by every core component."""

from __future__ import annotations


class NewsHubError(Exception):
    """Base class for all newshub errors."""

    retryable = False


class ValidationError(NewsHubError):
    """Malformed or incomplete input. Never retried automatically."""


class NotFound(NewsHubError):
    """Unknown article or user ID."""


class MissingEmbedding(NotFound):
    """Article exists but has no embedding, so it can't take part in KNN."""


class EnrichmentUnavailable(NewsHubError):
    """AI enrichment provider failed or timed out."""

    retryable = True


class EmbeddingUnavailable(NewsHubError):
    """Embedding provider failed or timed out."""

    retryable = True


class PreferencesRequired(NewsHubError):
    """User has no valid preferences yet; caller should run onboarding.

    This is a signal rather than a failure, so it is kept apart from the
    store and provider errors.
    """

    def __init__(self, user_id: str, state: str):
        super().__init__(f"User {user_id} must set preferences (state: {state})")
        self.user_id = user_id
        self.state = state


class StoreUnavailable(NewsHubError):
    """The document/cache store could not be reached or timed out."""

    retryable = True


class ServiceUnavailable(NewsHubError):
    """Request-boundary form of StoreUnavailable, safe to retry."""

    retryable = True
