"""Helpers for carrying cookies from one test request to the next."""

from typing import Dict, List, Optional

from werkzeug.wrappers import Request, Response

BASE_URL = 'https://sp.example.com'


def set_cookie_headers(response: Response) -> List[str]:
    """All ``Set-Cookie`` header values on ``response``."""
    return response.headers.getlist('Set-Cookie')


def set_cookie_header(response: Response, name: str) -> str:
    """The ``Set-Cookie`` header value for cookie ``name``."""
    for header in set_cookie_headers(response):
        if header.startswith(f'{name}='):
            return header
    raise AssertionError(f'No Set-Cookie for {name}')


def update_jar(response: Response,
               jar: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Apply the cookies set or deleted by ``response`` to ``jar``."""
    jar = dict(jar or {})
    for header in set_cookie_headers(response):
        pair, _, attributes = header.partition(';')
        name, _, value = pair.partition('=')
        if not value or 'max-age=0' in attributes.lower():
            jar.pop(name, None)
        else:
            jar[name] = value
    return jar


def make_request(path: str = '/', jar: Optional[Dict[str, str]] = None,
                 base_url: str = BASE_URL) -> Request:
    """Build a request carrying the cookies in ``jar``."""
    headers = {}
    if jar:
        headers['Cookie'] = '; '.join(f'{k}={v}' for k, v in jar.items())
    return Request.from_values(path=path, base_url=base_url,
                               headers=headers)
