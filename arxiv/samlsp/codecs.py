"""
Codecs that turn tracked requests and sessions into opaque, signed strings.

The request tracker and session provider only depend on the abstract
:class:`TrackedRequestCodec` and :class:`SessionCodec`. The default
implementations sign JSON web tokens with a shared secret, so that a value
read back from a cookie is known to have been produced by this service.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict

import jwt
from pydantic import ValidationError
from pytz import UTC

from .domain import Assertion, Session, TrackedRequest, MAX_ISSUE_DELAY
from .exceptions import InvalidAssertion, InvalidToken

DEFAULT_SESSION_MAX_AGE = timedelta(hours=1)

TRACKED_REQUEST_MARKER = 'saml-authn-request'
SESSION_MARKER = 'saml-session'


class TrackedRequestCodec(ABC):
    """Encodes and decodes :class:`.TrackedRequest` records."""

    @abstractmethod
    def encode(self, tracked_request: TrackedRequest) -> str:
        """Encode ``tracked_request`` as an opaque string."""

    @abstractmethod
    def decode(self, token: str) -> TrackedRequest:
        """
        Decode a string produced by :meth:`encode`.

        Raises
        ------
        :class:`.InvalidToken`
            Raised if the token is malformed, forged or expired.

        """


class SessionCodec(ABC):
    """Builds, encodes and decodes :class:`.Session` records."""

    @abstractmethod
    def new(self, assertion: Assertion) -> Session:
        """Build a new session from a validated ``assertion``."""

    @abstractmethod
    def encode(self, session: Session) -> str:
        """Encode ``session`` as an opaque string."""

    @abstractmethod
    def decode(self, token: str) -> Session:
        """
        Decode a string produced by :meth:`encode`.

        Raises
        ------
        :class:`.InvalidToken`
            Raised if the token is malformed, forged or expired.

        """


def _now() -> datetime:
    # JWT timestamps have a resolution of one second.
    return datetime.now(tz=UTC).replace(microsecond=0)


def _from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


class _JWTCodec(object):
    """Signing configuration shared by the JWT codecs."""

    def __init__(self, secret: str, audience: str, issuer: str,
                 max_age: timedelta, algorithm: str = 'HS256') -> None:
        self._secret = secret
        self.audience = audience
        self.issuer = issuer
        self.max_age = max_age
        self.algorithm = algorithm

    def _encode(self, claims: Dict[str, Any]) -> str:
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def _decode(self, token: str, marker: str) -> Dict[str, Any]:
        try:
            claims: Dict[str, Any] = jwt.decode(
                token, self._secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={'require': ['exp', 'iat', 'sub']}
            )
        except jwt.exceptions.ExpiredSignatureError as e:
            raise InvalidToken('Token has expired') from e
        except jwt.exceptions.PyJWTError as e:
            raise InvalidToken(f'Not a valid token: {e}') from e
        if claims.get(marker) is not True:
            raise InvalidToken(f'Expected {marker} claim')
        return claims


class JWTTrackedRequestCodec(_JWTCodec, TrackedRequestCodec):
    """Signs tracked requests as short-lived JWTs."""

    def __init__(self, secret: str, audience: str, issuer: str,
                 max_age: timedelta = MAX_ISSUE_DELAY,
                 algorithm: str = 'HS256') -> None:
        super().__init__(secret, audience, issuer, max_age, algorithm)

    def encode(self, tracked_request: TrackedRequest) -> str:
        """Encode ``tracked_request`` as a signed JWT."""
        now = _now()
        return self._encode({
            'aud': self.audience,
            'iss': self.issuer,
            'iat': now,
            'nbf': now,
            'exp': now + self.max_age,
            'sub': tracked_request.index,
            'index': tracked_request.index,
            'saml-request-id': tracked_request.saml_request_id,
            'uri': tracked_request.uri,
            TRACKED_REQUEST_MARKER: True
        })

    def decode(self, token: str) -> TrackedRequest:
        """Verify and decode a tracked request JWT."""
        claims = self._decode(token, TRACKED_REQUEST_MARKER)
        try:
            return TrackedRequest(index=claims['index'],
                                  saml_request_id=claims['saml-request-id'],
                                  uri=claims['uri'])
        except KeyError as e:
            raise InvalidToken(f'Token payload malformed: missing {e}') from e
        except ValidationError as e:
            raise InvalidToken(f'Token payload malformed: {e}') from e


class JWTSessionCodec(_JWTCodec, SessionCodec):
    """Signs sessions as JWTs carrying the assertion's attributes."""

    def __init__(self, secret: str, audience: str, issuer: str,
                 max_age: timedelta = DEFAULT_SESSION_MAX_AGE,
                 algorithm: str = 'HS256') -> None:
        super().__init__(secret, audience, issuer, max_age, algorithm)

    def new(self, assertion: Assertion) -> Session:
        """
        Build a session from a validated assertion.

        The session expires after :attr:`max_age`, or when the IdP says the
        assertion stops being valid, whichever comes first.
        """
        if not assertion.subject:
            raise InvalidAssertion('Assertion has no subject')
        now = _now()
        expires_at = now + self.max_age
        if assertion.not_on_or_after is not None:
            not_on_or_after = assertion.not_on_or_after
            if not_on_or_after.tzinfo is None:
                not_on_or_after = UTC.localize(not_on_or_after)
            expires_at = min(expires_at,
                             not_on_or_after.replace(microsecond=0))
        return Session(
            subject=assertion.subject,
            attributes={name: list(values) for name, values
                        in assertion.attributes.items()},
            audience=self.audience,
            issuer=self.issuer,
            issued_at=now,
            not_before=now,
            expires_at=expires_at,
            session_index=assertion.session_index
        )

    def encode(self, session: Session) -> str:
        """Encode ``session`` as a signed JWT."""
        claims: Dict[str, Any] = {
            'aud': session.audience,
            'iss': session.issuer,
            'iat': session.issued_at,
            'exp': session.expires_at,
            'sub': session.subject,
            'attr': session.attributes,
            SESSION_MARKER: True
        }
        if session.not_before is not None:
            claims['nbf'] = session.not_before
        if session.session_index is not None:
            claims['session-index'] = session.session_index
        return self._encode(claims)

    def decode(self, token: str) -> Session:
        """Verify and decode a session JWT."""
        claims = self._decode(token, SESSION_MARKER)
        not_before = claims.get('nbf')
        try:
            return Session(
                subject=claims['sub'],
                attributes=claims.get('attr') or {},
                audience=claims['aud'],
                issuer=claims['iss'],
                issued_at=_from_timestamp(claims['iat']),
                not_before=(_from_timestamp(not_before)
                            if not_before is not None else None),
                expires_at=_from_timestamp(claims['exp']),
                session_index=claims.get('session-index')
            )
        except KeyError as e:
            raise InvalidToken(f'Token payload malformed: missing {e}') from e
        except (ValidationError, TypeError) as e:
            raise InvalidToken(f'Token payload malformed: {e}') from e
