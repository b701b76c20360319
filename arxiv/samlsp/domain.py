"""Records exchanged by the request tracker and session provider."""

from typing import Dict, List, Optional
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from pytz import UTC
from pydantic import BaseModel, Field

MAX_ISSUE_DELAY = timedelta(seconds=90)
"""
Longest time allowed between issuing an ``AuthnRequest`` and consuming the
response. Tracked requests live exactly this long.
"""


class TrackedRequest(BaseModel):
    """A pending authentication request, held by the client in a cookie."""

    index: str
    """
    Unguessable correlation token.

    Used both as the suffix of the tracking cookie name and as the
    ``RelayState`` sent to the IdP.
    """

    saml_request_id: str
    """ID of the ``AuthnRequest``; the response must echo it back."""

    uri: str
    """The resource the user was trying to reach before logging in."""


class Assertion(BaseModel):
    """
    An assertion that has already been validated by the SAML layer.

    Only the parts needed to build a session are carried here. Parsing and
    signature checking of the XML happen before this point.
    """

    issuer: str = ''
    """Entity ID of the IdP that issued the assertion."""

    subject: str = ''
    """Value of the subject ``NameID``."""

    attributes: Dict[str, List[str]] = Field(default_factory=dict)
    """Attribute statements, keyed by attribute (friendly) name."""

    session_index: Optional[str] = None
    """``SessionIndex`` of the authn statement, needed for single logout."""

    not_on_or_after: Optional[datetime] = None
    """The IdP's upper bound on the lifetime of the session."""


class Session(BaseModel):
    """An authenticated session, as carried in the session cookie."""

    subject: str
    """The authenticated principal (``NameID`` of the assertion)."""

    attributes: Dict[str, List[str]] = Field(default_factory=dict)

    audience: str = ''
    issuer: str = ''

    issued_at: datetime
    not_before: Optional[datetime] = None
    expires_at: datetime

    session_index: Optional[str] = None

    def get(self, name: str) -> str:
        """Get the first value of attribute ``name``, or an empty string."""
        values = self.attributes.get(name)
        if not values:
            return ''
        return values[0]

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.expires_at`."""
        return datetime.now(tz=UTC) >= self.expires_at


class CookieOptions(BaseModel):
    """Attributes applied to a cookie each time it is written."""

    max_age: int = 0
    """Lifetime in seconds. Negative means delete the cookie now."""

    http_only: bool = True
    secure: bool = False
    domain: Optional[str] = None
    path: str = '/'
    same_site: Optional[str] = None


class ServiceProvider(BaseModel):
    """The parts of the SP identity that the tracker depends on."""

    entity_id: str = ''
    acs_url: str
    """Absolute URL of the assertion consumer service endpoint."""

    max_issue_delay: timedelta = MAX_ISSUE_DELAY

    @property
    def acs_scheme(self) -> str:
        """URL scheme of the ACS endpoint, e.g. ``https``."""
        return urlsplit(self.acs_url).scheme

    @property
    def acs_path(self) -> str:
        """Path of the ACS endpoint; tracking cookies are scoped to it."""
        return urlsplit(self.acs_url).path or '/'
