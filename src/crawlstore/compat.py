"""
Crawler-Facing Adapters

This module connects the storage service to the code around it:
- LegacyStorage: URL-keyed facade for callers that cannot handle cookie errors
- stringify_cookies / unstringify_cookies: cookie string format stored per host
- SessionCookies: loads and saves a requests.Session cookie jar per host
"""

import logging
from http.cookiejar import Cookie
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

import requests
from requests.cookies import create_cookie

from .errors import StorageError
from .storage import Storage

logger = logging.getLogger(__name__)


class LegacyStorage:
    """
    Facade matching the crawler's storage interface, keyed by URL.

    Cookie methods never raise: failures are logged and cookies() falls back
    to an empty string. Everything else delegates to Storage and raises.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def init(self):
        self.storage.init()

    def clear(self):
        self.storage.clear()

    def close(self):
        self.storage.close()

    def visited(self, request_id: int):
        self.storage.visited(request_id)

    def is_visited(self, request_id: int) -> bool:
        return self.storage.is_visited(request_id)

    def set_cookies(self, url: str, cookies: str):
        try:
            self.storage.set_cookies(urlsplit(url).netloc, cookies)
        except (StorageError, ValueError) as e:
            logger.error(f"SetCookies() error for {url}: {e}")

    def cookies(self, url: str) -> str:
        try:
            value = self.storage.cookies(urlsplit(url).netloc)
        except (StorageError, ValueError) as e:
            logger.error(f"Cookies() error for {url}: {e}")
            return ''
        return value or ''

    def add_request(self, payload: bytes):
        self.storage.add_request(payload)

    def get_request(self) -> Optional[bytes]:
        return self.storage.get_request()

    def queue_size(self) -> int:
        return self.storage.queue_size()


def stringify_cookies(cookies: Iterable[Cookie]) -> str:
    """
    Serialize cookies one per line as "name=value; Domain=..; Path=..; Secure".

    Args:
        cookies: http.cookiejar.Cookie objects, e.g. a RequestsCookieJar

    Returns:
        str: Newline separated cookie lines (empty string for no cookies)
    """
    lines = []
    for c in cookies:
        parts = [f"{c.name}={c.value if c.value is not None else ''}"]
        if c.domain:
            parts.append(f"Domain={c.domain}")
        if c.path:
            parts.append(f"Path={c.path}")
        if c.secure:
            parts.append("Secure")
        lines.append('; '.join(parts))
    return '\n'.join(lines)


def unstringify_cookies(text: str, default_domain: str = '') -> List[Cookie]:
    """
    Parse the output of stringify_cookies back into Cookie objects.

    Lines without a name are skipped; unknown attributes are ignored.
    """
    out = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        head, *attrs = [p.strip() for p in line.split(';')]
        name, _, value = head.partition('=')
        if not name:
            continue
        kwargs = {'domain': default_domain, 'path': '/', 'secure': False}
        for attr in attrs:
            key, _, val = attr.partition('=')
            key = key.lower()
            if key == 'domain':
                kwargs['domain'] = val
            elif key == 'path':
                kwargs['path'] = val or '/'
            elif key == 'secure':
                kwargs['secure'] = True
        out.append(create_cookie(name, value, **kwargs))
    return out


def _domain_matches(cookie_domain: str, hostname: str) -> bool:
    domain = cookie_domain.lstrip('.').lower()
    return hostname == domain or hostname.endswith('.' + domain)


class SessionCookies:
    """
    Persist the cookies of a requests.Session in the store, per host.

    The store key is the URL's netloc, the same key LegacyStorage uses.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def load(self, session: requests.Session, url: str) -> int:
        """
        Add the stored cookies for url's host to the session jar.

        Returns:
            int: Number of cookies loaded
        """
        parts = urlsplit(url)
        text = self.storage.cookies(parts.netloc)
        if not text:
            return 0
        loaded = unstringify_cookies(text, default_domain=parts.hostname or '')
        for cookie in loaded:
            session.cookies.set_cookie(cookie)
        return len(loaded)

    def save(self, session: requests.Session, url: str) -> int:
        """
        Store the session's cookies that apply to url's host.

        Returns:
            int: Number of cookies saved
        """
        parts = urlsplit(url)
        hostname = (parts.hostname or '').lower()
        matching = [c for c in session.cookies if _domain_matches(c.domain, hostname)]
        self.storage.set_cookies(parts.netloc, stringify_cookies(matching))
        return len(matching)
