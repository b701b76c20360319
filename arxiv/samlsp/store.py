"""
Per-cookie key-value storage used by the tracker and the session provider.

A :class:`CookieStore` hands out :class:`CookieSession` handles, one per
cookie name. Handles are kept in a registry on the WSGI environ for the
lifetime of the request, so that a value written earlier in a request is
visible to later reads in the same request.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, URLSafeSerializer
from werkzeug.wrappers import Request, Response

from .domain import CookieOptions
from .exceptions import CookieStoreError

logger = logging.getLogger(__name__)

VALUE_KEY = 'value'
"""Key under which the tracker and session provider keep their tokens."""

REGISTRY_KEY = 'arxiv.samlsp.cookies'
"""WSGI environ key of the per-request registry of cookie handles."""


class CookieSession(object):
    """Handle on a single named cookie for the duration of a request."""

    def __init__(self, store: 'CookieStore', name: str,
                 options: CookieOptions) -> None:
        self.store = store
        self.name = name
        self.options = options
        self.values: Dict[str, Any] = {}
        self.id: Optional[str] = None
        self.is_new = True

    def save(self, request: Request, response: Response) -> None:
        """Write this cookie (or its deletion) to ``response``."""
        self.store.save(request, response, self)

    def __repr__(self) -> str:
        return f'<CookieSession {self.name!r} new={self.is_new}>'


def _registry(request: Request) -> Dict[str, CookieSession]:
    registry: Dict[str, CookieSession] \
        = request.environ.setdefault(REGISTRY_KEY, {})
    return registry


class CookieStore(ABC):
    """
    Base class for cookie stores.

    Subclasses decide how values are carried: in the cookie itself, or
    server-side with only a reference in the cookie.
    """

    def __init__(self, options: Optional[CookieOptions] = None) -> None:
        self.options = options if options is not None else CookieOptions()

    def new(self, request: Request, name: str) -> CookieSession:
        """
        Create a handle for cookie ``name``.

        If the request carries a readable cookie of that name its values are
        loaded, otherwise the handle is empty. Either way the handle replaces
        any handle registered earlier in this request.
        """
        session = CookieSession(self, name, self.options.model_copy())
        raw = request.cookies.get(name)
        if raw:
            if self.load(session, raw):
                session.is_new = False
            else:
                logger.debug('Could not read cookie %s; starting empty', name)
        _registry(request)[name] = session
        return session

    def get(self, request: Request, name: str) -> CookieSession:
        """Get the handle for cookie ``name``, creating it if necessary."""
        registry = _registry(request)
        if name in registry:
            return registry[name]
        return self.new(request, name)

    def save(self, request: Request, response: Response,
             session: CookieSession) -> None:
        """
        Write ``session`` to the response.

        A negative ``max_age`` deletes the cookie on the client, and empties
        the handle so that later reads in this request see no value.
        """
        options = session.options
        try:
            if options.max_age < 0:
                self.discard(session)
                session.values.clear()
                response.delete_cookie(session.name, path=options.path,
                                       domain=options.domain,
                                       secure=options.secure,
                                       httponly=options.http_only,
                                       samesite=options.same_site)
                return
            value = self.dump(session)
            response.set_cookie(session.name, value,
                                max_age=options.max_age or None,
                                path=options.path,
                                domain=options.domain,
                                secure=options.secure,
                                httponly=options.http_only,
                                samesite=options.same_site)
        except ValueError as e:
            raise CookieStoreError(f'Failed to save {session.name}: {e}') \
                from e
        session.is_new = False

    @abstractmethod
    def load(self, session: CookieSession, raw: str) -> bool:
        """
        Populate ``session`` from the raw cookie value.

        Returns ``False`` if the value cannot be read (forged, stale or
        belonging to another application).
        """

    @abstractmethod
    def dump(self, session: CookieSession) -> str:
        """Produce the raw cookie value for ``session``."""

    def discard(self, session: CookieSession) -> None:
        """Release anything held for ``session`` outside the cookie."""


class SecureCookieStore(CookieStore):
    """
    Keeps values in the cookie itself, signed with ``secret_key``.

    The cookie name is part of the signature, so a value cannot be moved
    from one cookie to another.
    """

    def __init__(self, secret_key: str, salt: str = 'arxiv.samlsp',
                 options: Optional[CookieOptions] = None) -> None:
        super().__init__(options)
        self.salt = salt
        self._serializer = URLSafeSerializer(secret_key, salt=salt)

    def load(self, session: CookieSession, raw: str) -> bool:
        try:
            values = self._serializer.loads(raw, salt=self._salt(session))
        except BadSignature:
            return False
        if not isinstance(values, dict):
            return False
        session.values = values
        return True

    def dump(self, session: CookieSession) -> str:
        value: str = self._serializer.dumps(session.values,
                                            salt=self._salt(session))
        return value

    def _salt(self, session: CookieSession) -> str:
        return f'{self.salt}:{session.name}'
