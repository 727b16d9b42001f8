"""Media format model, parse options and codec detection for manifests."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field

import requests
from requests.adapters import HTTPAdapter

DEFAULT_HTTP_TIMEOUT = 30.0
MAX_CONCURRENT_FETCHES = 10

_session = None
_session_lock = threading.Lock()


class MediaType(str, enum.Enum):
    VIDEO = "video"
    AUDIO = "audio"


class MediaCodec(str, enum.Enum):
    AVC = "avc"
    HEVC = "hevc"
    AV1 = "av1"
    VP9 = "vp9"
    VP8 = "vp8"
    AAC = "aac"
    OPUS = "opus"
    MP3 = "mp3"
    FLAC = "flac"
    VORBIS = "vorbis"


@dataclass
class DecryptionKey:
    """Key material needed to decrypt a format's segments."""

    method: str = ""
    key: bytes = b""
    iv: bytes = b""
    media_sequence: int = 0


@dataclass
class MediaFormat:
    """One downloadable rendition found in a manifest."""

    format_id: str = ""
    type: MediaType | None = None
    video_codec: MediaCodec | None = None
    audio_codec: MediaCodec | None = None
    bitrate: int = 0
    width: int = 0
    height: int = 0
    duration: int = 0
    url: list = field(default_factory=list)
    segments: list | None = None
    init_segment: str = ""
    decryption_key: DecryptionKey | None = None


@dataclass
class ParseOptions:
    """Controls how manifests and their sub-playlists are fetched."""

    enable_concurrent_fetch: bool = True
    max_concurrency: int = MAX_CONCURRENT_FETCHES
    timeout: float = DEFAULT_HTTP_TIMEOUT


def default_parse_options():
    """Return the default manifest parsing options."""
    return ParseOptions()


_VIDEO_RULES = (
    (("avc", "h264"), MediaCodec.AVC),
    (("hvc", "h265", "hev1"), MediaCodec.HEVC),
    (("av01",), MediaCodec.AV1),
    (("vp9",), MediaCodec.VP9),
    (("vp8",), MediaCodec.VP8),
)

_AUDIO_RULES = (
    (("mp4a",), MediaCodec.AAC),
    (("opus",), MediaCodec.OPUS),
    (("mp3",), MediaCodec.MP3),
    (("flac",), MediaCodec.FLAC),
    (("vorbis",), MediaCodec.VORBIS),
)


def _match_codec(codecs, rules):
    lowered = (codecs or "").lower()
    return next(
        (codec for needles, codec in rules if any(n in lowered for n in needles)),
        None,
    )


def video_codec(codecs):
    """Return the video codec named in a CODECS string, or None."""
    return _match_codec(codecs, _VIDEO_RULES)


def audio_codec(codecs):
    """Return the audio codec named in a CODECS string, or None."""
    return _match_codec(codecs, _AUDIO_RULES)


def _shared_session():
    global _session
    with _session_lock:
        if _session is None:
            _session = requests.Session()
            adapter = HTTPAdapter(pool_connections=100, pool_maxsize=MAX_CONCURRENT_FETCHES)
            _session.mount("http://", adapter)
            _session.mount("https://", adapter)
        return _session


def _cookie_header(cookies):
    return "; ".join(f"{cookie.name}={cookie.value}" for cookie in cookies or ())


def fetch_content(url, cookies=None, timeout=DEFAULT_HTTP_TIMEOUT, session=None):
    """GET ``url`` and return the body, raising ConnectionError unless it is 200."""
    session = session if session is not None else _shared_session()
    headers = {}
    cookie_header = _cookie_header(cookies)
    if cookie_header:
        headers["Cookie"] = cookie_header
    try:
        response = session.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise ConnectionError(f"failed to fetch content: {exc}") from exc
    with response:
        if response.status_code != 200:
            raise ConnectionError(f"server returned status code: {response.status_code}")
        return response.content