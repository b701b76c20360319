"""Exceptions raised by the request tracker, session provider and stores."""

from datetime import datetime
from typing import Optional


class SAMLSPError(RuntimeError):
    """Base class for errors raised by this package."""


class ConfigurationError(SAMLSPError):
    """A required configuration parameter is missing or invalid."""


class CookieStoreError(SAMLSPError):
    """Failed to create, fetch or save a cookie in the cookie store."""


class InvalidToken(SAMLSPError):
    """An encoded tracked request or session could not be decoded."""


class InvalidAssertion(SAMLSPError):
    """A session cannot be built from the provided assertion."""


class IndexMismatch(SAMLSPError):
    """A tracked request was found under an index other than its own."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f'expected index {expected!r}, got {actual!r}')
        self.expected = expected
        self.actual = actual


class NoTrackedRequest(SAMLSPError):
    """There is no pending request for the given index."""


class NoSession(SAMLSPError):
    """There is no valid session on the request."""


class InvalidResponse(SAMLSPError):
    """
    A SAML response failed validation.

    The public message is deliberately vague; the reason is kept in
    :attr:`private_reason` for logging only.
    """

    def __init__(self, response: str = '', now: Optional[datetime] = None,
                 private_reason: str = '') -> None:
        super().__init__('Authentication failed')
        self.response = response
        self.now = now
        self.private_reason = private_reason
