"""
Wires the request tracker and session provider from application config.

Intended for use in a Flask application factory, for example:

.. code-block:: python

   from flask import Flask
   from arxiv.samlsp.factory import SAMLServiceProvider
   from someapp import routes


   def create_web_app() -> Flask:
       app = Flask('someapp')
       app.config.from_pyfile('config.py')
       SAMLServiceProvider(app)
       app.register_blueprint(routes.blueprint)
       return app

The ACS and login routes then use :func:`current_tracker` and
:func:`current_session_provider`.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlsplit

from flask import Flask, current_app
from pydantic import BaseModel, field_validator
from werkzeug.exceptions import Forbidden
from werkzeug.wrappers import Response

from . import config
from .codecs import JWTSessionCodec, JWTTrackedRequestCodec, \
    DEFAULT_SESSION_MAX_AGE
from .domain import ServiceProvider, MAX_ISSUE_DELAY
from .exceptions import ConfigurationError, CookieStoreError, IndexMismatch, \
    InvalidAssertion, InvalidResponse, InvalidToken
from .redis_store import RedisStore
from .session import SessionProvider
from .store import CookieStore, SecureCookieStore
from .tracker import RequestTracker

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'samlsp'

ErrorHandler = Callable[[Exception], Response]

FAILURES = (CookieStoreError, InvalidToken, IndexMismatch, InvalidAssertion,
            InvalidResponse)
"""
Errors answered by :func:`default_on_error`.

:class:`.NoSession` and :class:`.NoTrackedRequest` are not failures; the app
handles them itself, usually by starting a login.
"""


class Options(BaseModel):
    """Settings from which the default components are built."""

    url: str
    """Root URL of the SP."""

    jwt_secret: str
    jwt_algorithm: str = 'HS256'
    entity_id: str = ''
    acs_path: str = 'saml/acs'

    cookie_name: str = ''
    cookie_domain: str = ''
    cookie_secure: bool = False
    cookie_max_age: timedelta = timedelta(0)
    cookie_same_site: Optional[str] = None

    tracking_prefix: str = 'saml_'

    @field_validator('url')
    @classmethod
    def _ensure_trailing_slash(cls, url: str) -> str:
        return url if url.endswith('/') else url + '/'

    @property
    def acs_url(self) -> str:
        """Absolute URL of the assertion consumer service."""
        return self.url + self.acs_path.lstrip('/')

    @property
    def metadata_url(self) -> str:
        """Absolute URL of the SP metadata."""
        return self.url + 'saml/metadata'

    @classmethod
    def from_config(cls, app_config: Mapping[str, Any]) -> 'Options':
        """Build options from ``SAMLSP_*`` keys of a Flask config."""
        secret = app_config.get('SAMLSP_JWT_SECRET')
        if not secret:
            raise ConfigurationError('SAMLSP_JWT_SECRET is not set')
        return cls(
            url=app_config['SAMLSP_URL'],
            jwt_secret=secret,
            jwt_algorithm=app_config.get('SAMLSP_JWT_ALGORITHM', 'HS256'),
            entity_id=app_config.get('SAMLSP_ENTITY_ID', ''),
            acs_path=app_config.get('SAMLSP_ACS_PATH', 'saml/acs'),
            cookie_name=app_config.get('SAMLSP_COOKIE_NAME', ''),
            cookie_domain=app_config.get('SAMLSP_COOKIE_DOMAIN', ''),
            cookie_secure=_as_bool(app_config.get('SAMLSP_COOKIE_SECURE')),
            cookie_max_age=timedelta(seconds=int(
                app_config.get('SAMLSP_COOKIE_MAX_AGE') or 0
            )),
            cookie_same_site=app_config.get('SAMLSP_COOKIE_SAME_SITE') or None,
            tracking_prefix=app_config.get('SAMLSP_TRACKING_PREFIX', 'saml_')
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def default_service_provider(opts: Options) -> ServiceProvider:
    """Describe the SP identity; the entity ID defaults to the metadata URL."""
    return ServiceProvider(entity_id=opts.entity_id or opts.metadata_url,
                           acs_url=opts.acs_url,
                           max_issue_delay=MAX_ISSUE_DELAY)


def default_tracked_request_codec(opts: Options) -> JWTTrackedRequestCodec:
    """Sign tracked requests for our own URL, valid for the issue delay."""
    return JWTTrackedRequestCodec(opts.jwt_secret, audience=opts.url,
                                  issuer=opts.url, max_age=MAX_ISSUE_DELAY,
                                  algorithm=opts.jwt_algorithm)


def default_session_codec(opts: Options) -> JWTSessionCodec:
    """Sign sessions for our own URL, valid for the session lifetime."""
    return JWTSessionCodec(opts.jwt_secret, audience=opts.url,
                           issuer=opts.url, max_age=_session_max_age(opts),
                           algorithm=opts.jwt_algorithm)


def _session_max_age(opts: Options) -> timedelta:
    if opts.cookie_max_age > timedelta(0):
        return opts.cookie_max_age
    return DEFAULT_SESSION_MAX_AGE


def default_session_provider(store: CookieStore,
                             opts: Options) -> SessionProvider:
    """
    Create a :class:`.SessionProvider` with defaults derived from ``opts``.

    The cookie is named ``token`` and scoped to the host of the SP URL, and
    is ``Secure`` if the SP URL is https, unless configured otherwise. An
    explicit ``cookie_secure`` can turn the flag on but never off.
    """
    url = urlsplit(opts.url)
    return SessionProvider(
        store,
        default_session_codec(opts),
        name=opts.cookie_name or 'token',
        domain=opts.cookie_domain or url.netloc,
        max_age=_session_max_age(opts),
        http_only=True,
        secure=opts.cookie_secure or url.scheme == 'https',
        same_site=opts.cookie_same_site
    )


def default_request_tracker(store: CookieStore, opts: Options,
                            service_provider: ServiceProvider) \
        -> RequestTracker:
    """Create a :class:`.RequestTracker` with defaults from ``opts``."""
    return RequestTracker(store, service_provider,
                          default_tracked_request_codec(opts),
                          name_prefix=opts.tracking_prefix,
                          max_age=service_provider.max_issue_delay)


def default_on_error(log: Optional[logging.Logger] = None) -> ErrorHandler:
    """
    Get an error handler that logs ``error`` and responds 403 Forbidden.

    Details of invalid SAML responses are only ever logged, never sent to the
    client.
    """
    log = log if log is not None else logger

    def on_error(error: Exception) -> Response:
        if isinstance(error, InvalidResponse):
            log.warning('received invalid saml response: %s (now: %s) %s',
                        error.response, error.now, error.private_reason)
        else:
            log.error('%s', error)
        response: Response = Forbidden().get_response()
        return response
    return on_error


def get_store(app_config: Mapping[str, Any]) -> CookieStore:
    """Build the cookie store selected by ``SAMLSP_COOKIE_STORE``."""
    secret = app_config.get('SAMLSP_STORE_SECRET') \
        or app_config.get('SECRET_KEY')
    if not secret:
        raise ConfigurationError('Set SAMLSP_STORE_SECRET or SECRET_KEY')
    kind = app_config.get('SAMLSP_COOKIE_STORE', 'cookie')
    if kind == 'cookie':
        return SecureCookieStore(secret)
    if kind == 'redis':
        return RedisStore(app_config.get('REDIS_HOST', 'localhost'),
                          int(app_config.get('REDIS_PORT', '6379')),
                          int(app_config.get('REDIS_DATABASE', '0')),
                          secret)
    raise ConfigurationError(f'Unknown cookie store: {kind}')


class SAMLServiceProvider(object):
    """Attaches a request tracker and session provider to a Flask app."""

    def __init__(self, app: Optional[Flask] = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """
        Set config defaults and build the components for ``app``.

        Failures raised by the components that the app does not handle
        itself result in a 403 response. A missing session or tracked request
        is left to the app.
        """
        for key in dir(config):
            if key.isupper():
                app.config.setdefault(key, getattr(config, key))

        opts = Options.from_config(app.config)
        store = get_store(app.config)
        service_provider = default_service_provider(opts)
        app.extensions[EXTENSION_KEY] = {
            'options': opts,
            'service_provider': service_provider,
            'store': store,
            'tracker': default_request_tracker(store, opts,
                                               service_provider),
            'session_provider': default_session_provider(store, opts)
        }
        on_error = default_on_error()
        for error_class in FAILURES:
            app.register_error_handler(error_class, on_error)
        logger.debug('SAML SP configured for %s', opts.url)


def current_tracker() -> RequestTracker:
    """Get the :class:`.RequestTracker` of the current app."""
    tracker: RequestTracker \
        = current_app.extensions[EXTENSION_KEY]['tracker']
    return tracker


def current_session_provider() -> SessionProvider:
    """Get the :class:`.SessionProvider` of the current app."""
    provider: SessionProvider \
        = current_app.extensions[EXTENSION_KEY]['session_provider']
    return provider
