import logging

import requests

from crawlstore.compat import LegacyStorage, SessionCookies, stringify_cookies, unstringify_cookies


def test_legacy_cookies_keyed_by_url_host(store):
    legacy = LegacyStorage(store)
    legacy.set_cookies("https://a.com:8443/login", "sid=1")
    assert legacy.cookies("https://a.com:8443/other?q=1") == "sid=1"
    assert store.cookies("a.com:8443") == "sid=1"


def test_legacy_cookies_missing_host_is_empty_string(store):
    assert LegacyStorage(store).cookies("https://nobody.example/") == ""


def test_legacy_cookie_errors_are_logged_not_raised(store, caplog):
    legacy = LegacyStorage(store)
    store.close()
    caplog.set_level(logging.ERROR, logger="crawlstore.compat")

    legacy.set_cookies("https://a.com/", "k=v")
    assert legacy.cookies("https://a.com/") == ""

    messages = [r.getMessage() for r in caplog.records if r.name == "crawlstore.compat"]
    assert any("SetCookies()" in m for m in messages)
    assert any("Cookies()" in m for m in messages)


def test_legacy_delegates_queue_and_visited(store):
    legacy = LegacyStorage(store)
    legacy.visited(9)
    assert legacy.is_visited(9)
    legacy.add_request(b"one")
    assert legacy.queue_size() == 1
    assert legacy.get_request() == b"one"
    assert legacy.get_request() is None


def test_cookie_string_format():
    jar = requests.cookies.RequestsCookieJar()
    jar.set("sid", "abc", domain="a.com", path="/app", secure=True)
    text = stringify_cookies(jar)
    assert text == "sid=abc; Domain=a.com; Path=/app; Secure"

    (cookie,) = unstringify_cookies(text)
    assert (cookie.name, cookie.value, cookie.domain, cookie.path, cookie.secure) == \
        ("sid", "abc", "a.com", "/app", True)


def test_unstringify_skips_blank_and_nameless_lines():
    cookies = unstringify_cookies("a=1\n\n=orphan\nb=2; Path=/x", default_domain="h.com")
    assert [(c.name, c.value, c.domain) for c in cookies] == [("a", "1", "h.com"), ("b", "2", "h.com")]
    assert cookies[0].path == "/"
    assert cookies[1].path == "/x"


def test_session_cookies_save_and_load(store):
    bridge = SessionCookies(store)

    s1 = requests.Session()
    s1.cookies.set("sid", "abc", domain="a.com", path="/")
    s1.cookies.set("other", "zzz", domain="b.com", path="/")
    assert bridge.save(s1, "https://a.com/page") == 1
    assert "sid=abc" in store.cookies("a.com")
    assert "other" not in store.cookies("a.com")

    s2 = requests.Session()
    assert bridge.load(s2, "https://a.com/next") == 1
    assert s2.cookies.get("sid", domain="a.com") == "abc"


def test_session_cookies_subdomain_match(store):
    s = requests.Session()
    s.cookies.set("pref", "1", domain=".example.com", path="/")
    assert SessionCookies(store).save(s, "https://www.example.com/") == 1
    assert store.cookies("www.example.com").startswith("pref=1")


def test_session_cookies_load_nothing_stored(store):
    assert SessionCookies(store).load(requests.Session(), "https://empty.example/") == 0


def test_legacy_cookies_malformed_url_is_logged_not_raised(store, caplog):
    legacy = LegacyStorage(store)
    caplog.set_level(logging.ERROR, logger="crawlstore.compat")

    legacy.set_cookies("http://[::1/", "k=v")
    assert legacy.cookies("http://[::1/") == ""

    assert store.cookie_count() == 0
    messages = [r.getMessage() for r in caplog.records if r.name == "crawlstore.compat"]
    assert any("SetCookies()" in m for m in messages)
    assert any("Cookies()" in m for m in messages)
