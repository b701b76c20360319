"""
Cookie store backed by Redis.

Values are kept in Redis as JSON under a random ID; the cookie carries only
the signed ID. Useful when tokens grow too large for a browser cookie, e.g.
sessions with many attributes.
"""

import json
import logging
import secrets
from typing import Optional

import redis
from itsdangerous import BadSignature, URLSafeSerializer

from .domain import CookieOptions
from .exceptions import CookieStoreError
from .store import CookieSession, CookieStore

logger = logging.getLogger(__name__)


class RedisStore(CookieStore):
    """
    Keeps cookie values in Redis, keyed by a random ID.

    The cookie holds the ID, signed with the cookie name, and a Redis entry
    expires along with its cookie. Entries that are missing or unreadable
    are treated like an absent cookie. One store serves every request.
    """

    def __init__(self, host: str, port: int, db: int, secret_key: str,
                 key_prefix: str = 'samlsp:',
                 options: Optional[CookieOptions] = None) -> None:
        """Open the connection to Redis."""
        super().__init__(options)
        logger.debug('New Redis connection at %s, port %s', host, port)
        self.r = redis.StrictRedis(host=host, port=port, db=db)
        self.key_prefix = key_prefix
        self._signer = URLSafeSerializer(secret_key, salt='arxiv.samlsp.redis')

    def load(self, session: CookieSession, raw: str) -> bool:
        try:
            session_id = self._signer.loads(raw, salt=session.name)
        except BadSignature:
            return False
        try:
            data = self.r.get(self._key(session_id))
        except redis.exceptions.ConnectionError as e:
            raise CookieStoreError(f'Connection failed: {e}') from e
        if not data:
            logger.debug('No stored values for %s', session.name)
            return False
        try:
            values = json.loads(data)
        except ValueError:
            logger.debug('Stored values for %s are corrupt', session.name)
            return False
        if not isinstance(values, dict):
            return False
        session.id = session_id
        session.values = values
        return True

    def dump(self, session: CookieSession) -> str:
        if session.id is None:
            session.id = secrets.token_urlsafe(32)
        try:
            self.r.set(self._key(session.id), json.dumps(session.values),
                       ex=session.options.max_age or None)
        except redis.exceptions.ConnectionError as e:
            raise CookieStoreError(f'Connection failed: {e}') from e
        value: str = self._signer.dumps(session.id, salt=session.name)
        return value

    def discard(self, session: CookieSession) -> None:
        if session.id is None:
            return
        try:
            self.r.delete(self._key(session.id))
        except redis.exceptions.ConnectionError as e:
            raise CookieStoreError(f'Connection failed: {e}') from e
        session.id = None

    def _key(self, session_id: str) -> str:
        return f'{self.key_prefix}{session_id}'
