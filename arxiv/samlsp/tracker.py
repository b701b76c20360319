"""
Tracks pending SAML authentication requests in the browser.

Each outbound ``AuthnRequest`` gets its own cookie, named with a configurable
prefix and a random index. The index is sent to the IdP as ``RelayState``
and comes back with the response, which lets the ACS handler find the
request that the response answers, and the URI to send the user back to.

Nothing is kept server-side. The index is repeated inside the signed payload,
so a cookie copied under another index is detected.
"""

import logging
import secrets
from base64 import urlsafe_b64encode
from datetime import timedelta
from typing import Iterator, Optional
from urllib.parse import quote

from werkzeug.wrappers import Request, Response

from .codecs import TrackedRequestCodec
from .domain import ServiceProvider, TrackedRequest
from .exceptions import IndexMismatch, InvalidToken, NoTrackedRequest, \
    CookieStoreError
from .store import CookieStore, VALUE_KEY

logger = logging.getLogger(__name__)

INDEX_BYTES = 42


def _generate_index() -> str:
    """Generate an unguessable, URL-safe correlation index."""
    return urlsafe_b64encode(secrets.token_bytes(INDEX_BYTES)) \
        .rstrip(b'=').decode('ascii')


def _request_uri(request: Request) -> str:
    """
    The path and query of ``request``, as originally requested.

    The raw request target is preferred, since :attr:`Request.path` has
    already been percent-decoded.
    """
    raw = request.environ.get('RAW_URI') or request.environ.get('REQUEST_URI')
    if raw and raw.startswith('/'):
        return str(raw)
    path = quote(request.path, safe="/!$&'()*+,:;=@~")
    if request.query_string:
        return f'{path}?{request.query_string.decode("latin-1")}'
    return path


class RequestTracker(object):
    """Tracks pending authentication requests with one cookie per request."""

    def __init__(self, store: CookieStore, service_provider: ServiceProvider,
                 codec: TrackedRequestCodec, name_prefix: str = 'saml_',
                 max_age: Optional[timedelta] = None) -> None:
        self.store = store
        self.service_provider = service_provider
        self.codec = codec
        self.name_prefix = name_prefix
        if max_age is None:
            max_age = service_provider.max_issue_delay
        self.max_age = max_age

    def track_request(self, request: Request, response: Response,
                      saml_request_id: str, uri: Optional[str] = None) -> str:
        """
        Start tracking the SAML request with ID ``saml_request_id``.

        Parameters
        ----------
        request : :class:`werkzeug.wrappers.Request`
        response : :class:`werkzeug.wrappers.Response`
            The redirect (or POST form) that sends the user to the IdP. The
            tracking cookie is set on it.
        saml_request_id : str
            ID of the ``AuthnRequest``.
        uri : str
            Where to send the user after authentication. Defaults to the
            path and query of ``request``.

        Returns
        -------
        str
            The index, to be used as ``RelayState``.

        """
        tracked_request = TrackedRequest(
            index=_generate_index(),
            saml_request_id=saml_request_id,
            uri=uri if uri is not None else _request_uri(request)
        )
        signed = self.codec.encode(tracked_request)

        session = self.store.new(request, self._name(tracked_request.index))
        session.values[VALUE_KEY] = signed

        session.options.max_age = int(self.max_age.total_seconds())
        session.options.http_only = True
        session.options.secure = self.service_provider.acs_scheme == 'https'
        session.options.path = self.service_provider.acs_path

        session.save(request, response)
        logger.debug('Tracking request %s as %s', saml_request_id,
                     tracked_request.index)
        return tracked_request.index

    def stop_tracking_request(self, request: Request, response: Response,
                              index: str) -> None:
        """Stop tracking the request with ``index``, deleting its cookie."""
        session = self.store.get(request, self._name(index))
        session.options.path = self.service_provider.acs_path
        session.options.max_age = -1
        session.save(request, response)

    def get_tracked_request(self, request: Request,
                            index: str) -> TrackedRequest:
        """
        Get the pending request with ``index``.

        Raises
        ------
        :class:`.NoTrackedRequest`
            Raised if there is no cookie for ``index`` on the request.
        :class:`.InvalidToken`
            Raised if the cookie value cannot be decoded.
        :class:`.IndexMismatch`
            Raised if the cookie holds a request tracked under another index.

        """
        session = self.store.get(request, self._name(index))
        signed = session.values.get(VALUE_KEY)
        if not signed:
            raise NoTrackedRequest(f'No tracked request for {index}')

        tracked_request = self.codec.decode(signed)
        if tracked_request.index != index:
            raise IndexMismatch(index, tracked_request.index)
        return tracked_request

    def get_tracked_requests(self, request: Request) \
            -> Iterator[TrackedRequest]:
        """
        Generate all pending requests carried by ``request``.

        Cookies that are empty, unreadable, or filed under the wrong index are
        skipped; this never fails because of a single bad cookie.
        """
        for name in list(request.cookies.keys()):
            if not name.startswith(self.name_prefix):
                continue
            try:
                session = self.store.get(request, name)
            except CookieStoreError as e:
                logger.debug('Skipping %s: %s', name, e)
                continue

            signed = session.values.get(VALUE_KEY)
            if not signed:
                session.options.max_age = -1
                continue

            try:
                tracked_request = self.codec.decode(signed)
            except InvalidToken as e:
                logger.debug('Skipping %s: %s', name, e)
                continue

            if tracked_request.index != name[len(self.name_prefix):]:
                logger.debug('Skipping %s: filed under the wrong index', name)
                continue
            yield tracked_request

    def _name(self, index: str) -> str:
        return self.name_prefix + index
