"""
Issues, reads and revokes the session cookie set after a successful login.

There is one session cookie per browser, with a fixed name. The session is
held entirely by the client; the server keeps no session table.
"""

import logging
from datetime import timedelta
from typing import Optional

from werkzeug.wrappers import Request, Response

from .codecs import SessionCodec, DEFAULT_SESSION_MAX_AGE
from .domain import Assertion, Session
from .exceptions import InvalidToken, NoSession
from .store import CookieStore, VALUE_KEY

logger = logging.getLogger(__name__)


def strip_port(domain: str) -> str:
    """
    Remove the port, if any, from a host name.

    Cookie domains must not include a port.

    >>> strip_port('example.com:8443')
    'example.com'
    >>> strip_port('[::1]:8443')
    '::1'
    >>> strip_port('example.com:')
    'example.com'
    """
    host, sep, _ = domain.rpartition(':')
    if not sep:
        return domain
    if host.startswith('[') and host.endswith(']'):
        return host[1:-1]
    if ':' in host:     # An IPv6 address without a port.
        return domain
    return host


class SessionProvider(object):
    """Tracks the active session of a user with a single cookie."""

    def __init__(self, store: CookieStore, codec: SessionCodec,
                 name: str = 'token', domain: Optional[str] = None,
                 max_age: timedelta = DEFAULT_SESSION_MAX_AGE,
                 http_only: bool = True, secure: bool = False,
                 same_site: Optional[str] = None) -> None:
        self.store = store
        self.codec = codec
        self.name = name
        self.domain = domain
        self.max_age = max_age
        self.http_only = http_only
        self.secure = secure
        self.same_site = same_site

    def create_session(self, request: Request, response: Response,
                       assertion: Assertion) -> Session:
        """
        Create a session from a validated ``assertion``.

        Call this only once the SAML response has been fully validated. The
        session cookie is set on ``response``.

        Returns
        -------
        :class:`.Session`
            The new session.

        """
        domain = self._cookie_domain()

        session = self.codec.new(assertion)
        value = self.codec.encode(session)

        cookie = self.store.new(request, self.name)
        cookie.values[VALUE_KEY] = value

        cookie.options.domain = domain
        cookie.options.max_age = int(self.max_age.total_seconds())
        cookie.options.http_only = self.http_only
        cookie.options.secure = self.secure or request.scheme == 'https'
        cookie.options.same_site = self.same_site
        cookie.options.path = '/'

        cookie.save(request, response)
        logger.info('Created session for %s', session.subject)
        return session

    def delete_session(self, request: Request, response: Response) -> None:
        """Remove the session by expiring its cookie."""
        cookie = self.store.get(request, self.name)
        cookie.options.domain = self._cookie_domain()
        cookie.options.path = '/'
        cookie.options.max_age = -1
        cookie.save(request, response)
        logger.info('Deleted session cookie %s', self.name)

    def get_session(self, request: Request) -> Session:
        """
        Get the session associated with ``request``.

        Raises
        ------
        :class:`.NoSession`
            Raised if there is no session cookie, or if its value cannot be
            decoded. A forged or expired cookie is no different from no
            cookie at all.

        """
        cookie = self.store.get(request, self.name)
        value = cookie.values.get(VALUE_KEY)
        if not value:
            raise NoSession('No session cookie')
        try:
            return self.codec.decode(value)
        except InvalidToken as e:
            logger.debug('Session cookie not valid: %s', e)
            raise NoSession('Session cookie not valid') from e

    def _cookie_domain(self) -> Optional[str]:
        if not self.domain:
            return None
        return strip_port(self.domain)
