"""Small helpers: HTTP requests, cookies, text escaping and random strings."""

from __future__ import annotations

import binascii
import html
import logging
import os
import re
import secrets
from datetime import timedelta

import requests
from requests.cookies import create_cookie
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)

CHROME_UA = (
    "Mozilla/5.0 (Linux; Android 10; SM-G960U) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/88.0.4324.181 Mobile Safari/537.36"
)

_BASE64_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
_ALPHA_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_ALPHA_MAX_BYTE = 255 - (255 % len(_ALPHA_LETTERS))

_URL_RE = re.compile(r"""https?://[^\s"'<>]+""", re.ASCII)
_IP_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b", re.ASCII)
_REDACTED = html.escape("<redacted>")

_cookies_cache = {}
_session = None


def _default_session():
    global _session
    if _session is None:
        _session = requests.Session()
    return _session


def _seconds(value):
    if isinstance(value, timedelta):
        return value.total_seconds()
    return value


def exceeds_max_file_size(file_size, max_file_size):
    """Return True if the size is above the configured maximum."""
    return file_size > max_file_size


def exceeds_max_duration(duration, max_duration):
    """Return True if a duration in seconds is above the maximum.

    ``max_duration`` may be a timedelta or a number of seconds; fractions of
    a second are dropped.
    """
    return duration > int(_seconds(max_duration))


def _prepare_headers(headers, cookies):
    prepared = CaseInsensitiveDict(headers or {})
    if not prepared.get("User-Agent"):
        prepared["User-Agent"] = CHROME_UA
    pairs = "; ".join(f"{cookie.name}={cookie.value}" for cookie in cookies or ())
    if pairs:
        existing = prepared.get("Cookie")
        prepared["Cookie"] = f"{existing}; {pairs}" if existing else pairs
    return prepared


def fetch_page(session, method, url, body=None, headers=None, cookies=None):
    """Send a request with a browser User-Agent unless one is given."""
    session = session or _default_session()
    return session.request(
        method, url, data=body, headers=_prepare_headers(headers, cookies)
    )


def get_location_url(session, url, headers=None, cookies=None):
    """Return the final URL after redirects, trying HEAD and then GET."""
    session = session or _default_session()
    prepared = _prepare_headers(headers, cookies)
    for method in ("HEAD", "GET"):
        try:
            response = session.request(method, url, headers=prepared, allow_redirects=True)
        except requests.RequestException as exc:
            logger.debug("%s request for location failed: %s", method, exc)
            continue
        response.close()
        logger.debug("%s response url: %s", method.lower(), response.url)
        return response.url
    raise ConnectionError("failed to get location url")


def escape_caption(text):
    """Escape only '<' and '>' so the text is safe as an HTML caption."""
    return text.replace("<", "&lt;").replace(">", "&gt;")


def random_base64(length):
    """Return a random string over the URL-safe base64 alphabet."""
    return "".join(_BASE64_LETTERS[byte & 63] for byte in secrets.token_bytes(length))


def random_alpha_string(length):
    """Return a random string of ASCII letters."""
    chars = []
    while len(chars) < length:
        byte = secrets.token_bytes(1)[0]
        if byte > _ALPHA_MAX_BYTE:
            continue
        chars.append(_ALPHA_LETTERS[byte % len(_ALPHA_LETTERS)])
    return "".join(chars)


def _parse_cookie_line(line, line_number):
    http_only = False
    if line.startswith("#HttpOnly_"):
        http_only = True
        line = line[len("#HttpOnly_"):]
    fields = line.split("\t")
    if len(fields) == 6:
        fields.append("")
    if len(fields) != 7:
        raise ValueError(f"line {line_number}: expected 7 tab-separated fields")
    domain, _include_subdomains, path, secure, expires, name, value = fields
    try:
        expiry = int(expires)
    except ValueError as exc:
        raise ValueError(f"line {line_number}: invalid expiry {expires!r}") from exc
    return create_cookie(
        name,
        value,
        domain=domain,
        path=path,
        secure=secure.upper() == "TRUE",
        expires=expiry or None,
        rest={"HttpOnly": None} if http_only else {},
    )


def parse_cookie_file(file_name, directory="cookies"):
    """Parse a Netscape-format cookie file, caching the result per path."""
    path = os.path.join(directory, file_name)
    cached = _cookies_cache.get(path)
    if cached is not None:
        return cached
    with open(path, encoding="utf-8") as handle:
        lines = handle.read().splitlines()
    cookies = []
    try:
        for number, raw in enumerate(lines, 1):
            line = raw.strip("\r\n")
            if not line.strip():
                continue
            if line.startswith("#") and not line.startswith("#HttpOnly_"):
                continue
            cookies.append(_parse_cookie_line(line, number))
    except ValueError as exc:
        raise ValueError(f"failed to parse cookie file: {exc}") from exc
    _cookies_cache[path] = cookies
    return cookies


def fix_url(url):
    """Undo HTML escaping of ampersands in a URL."""
    return url.replace("&amp;", "&")


def redact_urls(text):
    """Replace IPv4 addresses and http(s) URLs with an escaped placeholder."""
    text = _IP_RE.sub(_REDACTED, text)
    return _URL_RE.sub(_REDACTED, text)


def parse_hex(text):
    """Decode a 16-byte hex value, with or without a 0x prefix."""
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        value = binascii.unhexlify(text)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hex IV: {exc}") from exc
    if len(value) != 16:
        raise ValueError(f"IV must be 16 bytes, got {len(value)}")
    return value


def get_cookie_by_name(cookies, name):
    """Return the first cookie with the given name, or None."""
    return next((cookie for cookie in cookies if cookie.name == name), None)