# catalog_bot/errors.py

from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "❌ An error occurred. Please try again."


class CatalogBotError(Exception):
    """Base class for errors that carry a message safe to show to the user."""

    def __init__(self, user_message: str = GENERIC_FAILURE_MESSAGE):
        super().__init__(user_message)
        self.user_message = user_message


class ValidationError(CatalogBotError):
    """Bad user input. The current step is re-prompted and state is unchanged."""


class NotFoundError(CatalogBotError):
    """A lookup missed. Terminal for the request that triggered it."""


class ExternalRateLimit(CatalogBotError):
    """The transport asked us to slow down for `retry_after` seconds."""

    def __init__(self, retry_after: float | None = None, user_message: str = ""):
        super().__init__(user_message or "⚠️ Rate limit hit.")
        self.retry_after = retry_after


class ExternalTransientError(CatalogBotError):
    """A transport call failed for a reason other than rate limiting."""


class PersistenceConflict(CatalogBotError):
    """A record violated a unique index."""

    def __init__(self, collection: str, key: object):
        super().__init__(f"❌ A record with this id already exists ({key}).")
        self.collection = collection
        self.key = key


class UnexpectedState(CatalogBotError):
    """The conversation state is corrupted or names an unknown step."""
