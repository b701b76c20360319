"""
Request tracking and sessions for SAML service providers.

Two components sit around the (external) validation of SAML responses:

* :class:`.RequestTracker` remembers each outbound ``AuthnRequest`` in its
  own signed cookie, keyed by a random index that travels as
  ``RelayState``, so that the ACS endpoint can match the response to the
  request and send the user back where they started.
* :class:`.SessionProvider` turns a validated assertion into a signed session
  cookie, and reads it back on later requests.

Both keep all of their state in the browser via a :class:`.CookieStore`.
See :mod:`.factory` for wiring them into a Flask application.
"""

from .domain import Assertion, Session, TrackedRequest, ServiceProvider
from .exceptions import NoSession, NoTrackedRequest, IndexMismatch, \
    InvalidToken
from .session import SessionProvider
from .tracker import RequestTracker
