"""Tests for :mod:`arxiv.samlsp.session`."""

from unittest import TestCase, mock
from datetime import datetime, timedelta

import jwt
from pytz import UTC
from werkzeug.wrappers import Response

from .. import session as session_module
from ..codecs import JWTSessionCodec
from ..domain import Assertion
from ..exceptions import CookieStoreError, InvalidAssertion, NoSession
from ..session import SessionProvider, strip_port
from ..store import SecureCookieStore, VALUE_KEY
from .util import make_request, set_cookie_header, update_jar

URL = 'https://sp.example.com/'
HTTP_URL = 'http://sp.example.com'


class TestStripPort(TestCase):
    """Cookie domains must not carry a port."""

    def test_host_and_port(self):
        """The port is removed."""
        self.assertEqual(strip_port('example.com:8443'), 'example.com')
        self.assertEqual(strip_port('127.0.0.1:5000'), '127.0.0.1')

    def test_host_only(self):
        """A domain without a port is unchanged."""
        self.assertEqual(strip_port('example.com'), 'example.com')
        self.assertEqual(strip_port('.example.com'), '.example.com')

    def test_empty_or_odd_port(self):
        """Anything after the last colon of a host name is dropped."""
        self.assertEqual(strip_port('example.com:'), 'example.com')
        self.assertEqual(strip_port('example.com:abc'), 'example.com')
        self.assertEqual(strip_port('[::1]:'), '::1')

    def test_ipv6(self):
        """IPv6 literals are handled with or without a port."""
        self.assertEqual(strip_port('[::1]:8443'), '::1')
        self.assertEqual(strip_port('::1'), '::1')


class SessionTestCase(TestCase):
    """Base class with a session provider and a validated assertion."""

    def setUp(self):
        """Create a provider whose domain carries a port."""
        self.store = SecureCookieStore('storesecret')
        self.codec = JWTSessionCodec('foosecret', URL, URL)
        self.provider = SessionProvider(self.store, self.codec,
                                        domain='example.com:8443',
                                        secure=False)
        self.assertion = Assertion(
            issuer='https://idp.example.com/metadata',
            subject='jdoe@example.com',
            attributes={'cn': ['Jane Doe'], 'uid': ['jdoe']},
            session_index='_session-1'
        )

    def _create(self, base_url=HTTP_URL):
        """Create a session; return it with the resulting cookies."""
        response = Response()
        session = self.provider.create_session(
            make_request('/saml/acs', base_url=base_url), response,
            self.assertion
        )
        return session, update_jar(response), response


class TestCreateSession(SessionTestCase):
    """Creating a session sets a site-wide cookie."""

    def test_cookie_attributes(self):
        """The cookie is HTTP-only, site-wide, and lives an hour."""
        _, _, response = self._create()
        header = set_cookie_header(response, 'token')
        self.assertIn('Path=/', header)
        self.assertIn('Max-Age=3600', header)
        self.assertIn('HttpOnly', header)
        self.assertNotIn('Secure', header)

    def test_port_stripped(self):
        """The port is removed from the cookie domain."""
        request = make_request('/saml/acs', base_url=HTTP_URL)
        self.provider.create_session(request, Response(), self.assertion)
        cookie = self.store.get(request, 'token')
        self.assertEqual(cookie.options.domain, 'example.com')
        self.assertEqual(self.provider.domain, 'example.com:8443',
                         'The provider is not modified')

    def test_secure_request(self):
        """The cookie is secure if the request came over https."""
        _, _, response = self._create(base_url=URL)
        self.assertIn('Secure', set_cookie_header(response, 'token'))

    def test_configured_secure(self):
        """A secure provider sets secure cookies even over plain http."""
        self.provider.secure = True
        _, _, response = self._create()
        self.assertIn('Secure', set_cookie_header(response, 'token'))

    def test_max_age(self):
        """The lifetime of the cookie is configurable."""
        self.provider.max_age = timedelta(minutes=10)
        _, _, response = self._create()
        self.assertIn('Max-Age=600', set_cookie_header(response, 'token'))

    def test_cookie_name(self):
        """The cookie name is configurable."""
        self.provider.name = 'arxiv_sso'
        _, jar, _ = self._create()
        self.assertIn('arxiv_sso', jar)
        self.assertNotIn('token', jar)

    def test_invalid_assertion(self):
        """Errors building the session propagate, and no cookie is set."""
        response = Response()
        with self.assertRaises(InvalidAssertion):
            self.provider.create_session(make_request(), response,
                                         Assertion(attributes={}))
        self.assertEqual(response.headers.getlist('Set-Cookie'), [])

    def test_store_fails(self):
        """Store errors propagate."""
        self.provider.store = mock.MagicMock()
        self.provider.store.new.side_effect = CookieStoreError('nope')
        with self.assertRaises(CookieStoreError):
            self.provider.create_session(make_request(), Response(),
                                         self.assertion)


class TestGetSession(SessionTestCase):
    """Reading the session back."""

    def test_round_trip(self):
        """The session comes back on the next request."""
        session, jar, _ = self._create()
        found = self.provider.get_session(make_request('/', jar=jar))
        self.assertEqual(found, session)
        self.assertEqual(found.subject, 'jdoe@example.com')
        self.assertEqual(found.get('uid'), 'jdoe')

    def test_no_cookie(self):
        """No cookie means no session."""
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request('/'))

    def test_forged_cookie(self):
        """A cookie the store cannot read means no session."""
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request('/',
                                                   jar={'token': 'forged'}))

    def _store_value(self, value):
        request = make_request()
        response = Response()
        cookie = self.store.new(request, 'token')
        cookie.values[VALUE_KEY] = value
        cookie.save(request, response)
        return update_jar(response)

    def test_empty_value(self):
        """A readable cookie with an empty value means no session."""
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request(
                '/', jar=self._store_value('')
            ))

    def test_undecodable(self):
        """A value the codec cannot decode means no session, not an error."""
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request(
                '/', jar=self._store_value('notajwt')
            ))

    def test_other_audience(self):
        """A session issued for another SP means no session."""
        other = JWTSessionCodec('foosecret', 'https://other.example.com/',
                                'https://other.example.com/')
        token = other.encode(other.new(self.assertion))
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request(
                '/', jar=self._store_value(token)
            ))

    def test_malformed_payload(self):
        """A signed session with a payload of the wrong shape is no session."""
        now = datetime.now(tz=UTC)
        token = jwt.encode({'aud': [URL], 'iss': URL, 'iat': now,
                            'exp': now + timedelta(minutes=5), 'sub': 'jdoe',
                            'attr': 'cn', 'saml-session': True}, 'foosecret')
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request(
                '/', jar=self._store_value(token)
            ))

    def test_store_fails(self):
        """Store errors are not mistaken for a missing session."""
        self.provider.store = mock.MagicMock()
        self.provider.store.get.side_effect = CookieStoreError('nope')
        with self.assertRaises(CookieStoreError):
            self.provider.get_session(make_request())


class TestDeleteSession(SessionTestCase):
    """Logging out."""

    def test_delete(self):
        """After deletion there is no session."""
        _, jar, _ = self._create()
        request = make_request('/logout', jar=jar)
        self.assertIsNotNone(self.provider.get_session(request))

        response = Response()
        self.provider.delete_session(request, response)
        header = set_cookie_header(response, 'token')
        self.assertIn('Max-Age=0', header)
        self.assertIn('Domain=example.com', header)

        with self.assertRaises(NoSession):
            self.provider.get_session(request)
        with self.assertRaises(NoSession):
            self.provider.get_session(make_request(
                '/', jar=update_jar(response, jar)
            ))

    @mock.patch(f'{session_module.__name__}.logger')
    def test_delete_without_session(self, mock_logger):
        """Deleting when there is no session still expires the cookie."""
        response = Response()
        self.provider.delete_session(make_request('/logout'), response)
        self.assertIn('Max-Age=0', set_cookie_header(response, 'token'))
        self.assertEqual(mock_logger.info.call_count, 1)

    def test_store_fails(self):
        """Store errors propagate."""
        self.provider.store = mock.MagicMock()
        self.provider.store.get.side_effect = CookieStoreError('nope')
        with self.assertRaises(CookieStoreError):
            self.provider.delete_session(make_request(), Response())
