"""Flask configuration for the SAML service provider components."""

import os
import secrets

SAMLSP_URL = os.environ.get('SAMLSP_URL', 'http://localhost:8000/')
"""
Root URL of the service provider.

The ACS and metadata URLs, the session cookie domain and the session cookie
``Secure`` flag are derived from it unless configured separately.
"""

SAMLSP_ENTITY_ID = os.environ.get('SAMLSP_ENTITY_ID', '')
"""Entity ID of the SP. Defaults to the metadata URL."""

SAMLSP_ACS_PATH = os.environ.get('SAMLSP_ACS_PATH', 'saml/acs')
"""Path of the assertion consumer service, relative to :const:`SAMLSP_URL`."""

SAMLSP_JWT_SECRET = os.environ.get('SAMLSP_JWT_SECRET',
                                   secrets.token_urlsafe(16))
"""
Secret used to sign tracked request and session tokens.

The default is random per process; set it explicitly when running more than
one worker, or tokens issued by one worker will be rejected by the others.
"""

SAMLSP_JWT_ALGORITHM = os.environ.get('SAMLSP_JWT_ALGORITHM', 'HS256')

SAMLSP_COOKIE_NAME = os.environ.get('SAMLSP_COOKIE_NAME', '')
"""Name of the session cookie. Empty means ``token``."""

SAMLSP_COOKIE_DOMAIN = os.environ.get('SAMLSP_COOKIE_DOMAIN', '')
"""Domain of the session cookie. Empty means the host of the SP URL."""

SAMLSP_COOKIE_SECURE = os.environ.get('SAMLSP_COOKIE_SECURE', '0')
"""
Set to ``1`` to always mark the session cookie ``Secure``.

It is marked ``Secure`` anyway if the SP URL is https.
"""

SAMLSP_COOKIE_MAX_AGE = os.environ.get('SAMLSP_COOKIE_MAX_AGE', '0')
"""Session lifetime in seconds. ``0`` means one hour."""

SAMLSP_COOKIE_SAME_SITE = os.environ.get('SAMLSP_COOKIE_SAME_SITE', '')

SAMLSP_TRACKING_PREFIX = os.environ.get('SAMLSP_TRACKING_PREFIX', 'saml_')
"""Prefix of the names of request tracking cookies."""

SAMLSP_COOKIE_STORE = os.environ.get('SAMLSP_COOKIE_STORE', 'cookie')
"""Either ``cookie`` (values in signed cookies) or ``redis``."""

SAMLSP_STORE_SECRET = os.environ.get('SAMLSP_STORE_SECRET', '')
"""Secret used by the cookie store. Empty means the app's ``SECRET_KEY``."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
