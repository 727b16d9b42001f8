"""HTTP sessions, proxy selection and the edge proxy client."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from http import HTTPStatus
from urllib.parse import quote_plus, urlsplit

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
_POOL_SIZE = 100

_default_session = None
_default_lock = threading.Lock()


class _TimeoutSession(requests.Session):
    """A session that applies a default timeout to every request."""

    def __init__(self, timeout=DEFAULT_TIMEOUT):
        super().__init__()
        self.timeout = timeout
        adapter = HTTPAdapter(pool_connections=_POOL_SIZE, pool_maxsize=_POOL_SIZE)
        self.mount("http://", adapter)
        self.mount("https://", adapter)

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


def default_session():
    """Return the shared session, created on first use."""
    global _default_session
    with _default_lock:
        if _default_session is None:
            _default_session = _TimeoutSession()
        return _default_session


def parse_no_proxy_list(no_proxy):
    """Split a comma-separated no-proxy setting into trimmed entries."""
    if not no_proxy:
        return []
    return [entry.strip() for entry in no_proxy.split(",")]


def should_bypass_proxy(host, no_proxy_list):
    """Return True if the host matches an entry exactly or a leading-dot suffix."""
    return any(
        entry and (entry == host or (entry.startswith(".") and host.endswith(entry)))
        for entry in no_proxy_list
    )


def _parse_proxy(value, label):
    if not value:
        return None
    try:
        urlsplit(value)
    except ValueError as exc:
        logger.warning("invalid %s proxy URL '%s': %s", label, value, exc)
        return None
    return value


class ProxySelector:
    """Chooses the proxy for a URL from per-scheme settings and a bypass list."""

    def __init__(self, http_proxy="", https_proxy="", no_proxy=""):
        self.http_proxy = _parse_proxy(http_proxy, "HTTP")
        self.https_proxy = _parse_proxy(https_proxy, "HTTPS")
        self.no_proxy = parse_no_proxy_list(no_proxy)

    def select(self, url):
        """Return the proxy URL to use for ``url``, or None to connect directly."""
        if self.http_proxy is None and self.https_proxy is None:
            return None
        parts = urlsplit(url)
        if should_bypass_proxy(parts.hostname or "", self.no_proxy):
            return None
        if parts.scheme == "https" and self.https_proxy is not None:
            return self.https_proxy
        if parts.scheme == "http" and self.http_proxy is not None:
            return self.http_proxy
        return self.https_proxy if self.https_proxy is not None else self.http_proxy

    def proxies(self, url):
        """Return a ``proxies`` mapping suitable for a requests call."""
        proxy = self.select(url)
        if proxy is None:
            return {}
        return {urlsplit(url).scheme: proxy}


@dataclass
class ProxyResponse:
    """The JSON document returned by the edge proxy."""

    status_code: int = 0
    text: str = ""
    url: str = ""
    headers: dict = field(default_factory=dict)
    cookies: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        return cls(
            status_code=int(data.get("status_code") or 0),
            text=data.get("text") or "",
            url=data.get("url") or "",
            headers=dict(data.get("headers") or {}),
            cookies=list(data.get("cookies") or []),
        )


def parse_proxy_response(payload, request_url):
    """Turn an edge proxy JSON payload into a requests Response."""
    try:
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        proxied = ProxyResponse.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"error parsing proxy response: {exc}") from exc

    target_url = proxied.url or request_url
    try:
        urlsplit(target_url)
    except ValueError as exc:
        raise ValueError(f"error parsing response URL: {exc}") from exc

    response = requests.Response()
    response.status_code = proxied.status_code
    try:
        response.reason = HTTPStatus(proxied.status_code).phrase
    except ValueError:
        response.reason = ""
    response._content = proxied.text.encode("utf-8")
    response.encoding = "utf-8"
    response.url = target_url

    headers = CaseInsensitiveDict()
    for name, value in proxied.headers.items():
        headers[name] = value
    for cookie in proxied.cookies:
        existing = headers.get("Set-Cookie")
        headers["Set-Cookie"] = f"{existing}, {cookie}" if existing else cookie
    response.headers = headers
    return response


class EdgeProxyClient:
    """Sends requests through an edge proxy that fetches the target URL."""

    def __init__(self, proxy_url, session=None):
        self.proxy_url = proxy_url
        self.session = session if session is not None else _TimeoutSession()

    def request(self, method, url, headers=None, data=None):
        """Fetch ``url`` through the proxy and return the reconstructed response."""
        if not self.proxy_url:
            raise ValueError("proxy URL is not set")
        target = f"{self.proxy_url}?url={quote_plus(url)}"
        try:
            proxy_response = self.session.request(
                method, target, headers=dict(headers or {}), data=data
            )
        except requests.RequestException as exc:
            raise ConnectionError(f"proxy request failed: {exc}") from exc
        with proxy_response:
            payload = proxy_response.content
        return parse_proxy_response(payload, url)