"""HLS (M3U8) playlist parsing into media formats."""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit

from .formats import (
    DecryptionKey,
    MediaFormat,
    MediaType,
    ParseOptions,
    audio_codec,
    default_parse_options,
    fetch_content,
    video_codec,
)
from .misc import parse_hex

logger = logging.getLogger(__name__)

_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9-]+)=("[^"]*"|[^,]*)')

_MASTER_TAGS = ("#EXT-X-STREAM-INF", "#EXT-X-I-FRAME-STREAM-INF", "#EXT-X-MEDIA:")
_MEDIA_TAGS = (
    "#EXTINF",
    "#EXT-X-TARGETDURATION",
    "#EXT-X-MEDIA-SEQUENCE",
    "#EXT-X-KEY",
    "#EXT-X-MAP",
    "#EXT-X-ENDLIST",
    "#EXT-X-PLAYLIST-TYPE",
    "#EXT-X-BYTERANGE",
    "#EXT-X-DISCONTINUITY",
)


@dataclass
class _Variant:
    uri: str = ""
    bandwidth: int = 0
    resolution: str = ""
    codecs: str = ""
    audio: str = ""


@dataclass
class _Alternative:
    group_id: str = ""
    type: str = ""
    uri: str = ""


@dataclass
class _Key:
    method: str = ""
    uri: str = ""
    iv: str = ""


@dataclass
class _Segment:
    uri: str
    duration: float = 0.0
    limit: int = 0


@dataclass
class _MasterPlaylist:
    variants: list = field(default_factory=list)
    alternatives: list = field(default_factory=list)


@dataclass
class _MediaPlaylist:
    segments: list = field(default_factory=list)
    media_sequence: int = 0
    key: _Key | None = None
    map_uri: str = ""


def _attributes(line):
    _, _, rest = line.partition(":")
    return {
        name.upper(): value[1:-1] if value.startswith('"') and value.endswith('"') else value
        for name, value in _ATTRIBUTE_RE.findall(rest)
    }


def _to_int(text):
    try:
        return int(text.strip())
    except (AttributeError, ValueError):
        return 0


def _to_float(text):
    try:
        return float(text.strip())
    except (AttributeError, ValueError):
        return 0.0


def _variant_from(attrs):
    return _Variant(
        bandwidth=_to_int(attrs.get("BANDWIDTH", "")),
        resolution=attrs.get("RESOLUTION", ""),
        codecs=attrs.get("CODECS", ""),
        audio=attrs.get("AUDIO", ""),
    )


def _decode_master(lines):
    playlist = _MasterPlaylist()
    pending = None
    for line in lines:
        if line.startswith("#EXT-X-STREAM-INF:"):
            pending = _variant_from(_attributes(line))
        elif line.startswith("#EXT-X-I-FRAME-STREAM-INF:"):
            attrs = _attributes(line)
            variant = _variant_from(attrs)
            variant.uri = attrs.get("URI", "")
            playlist.variants.append(variant)
        elif line.startswith("#EXT-X-MEDIA:"):
            attrs = _attributes(line)
            playlist.alternatives.append(
                _Alternative(
                    group_id=attrs.get("GROUP-ID", ""),
                    type=attrs.get("TYPE", ""),
                    uri=attrs.get("URI", ""),
                )
            )
        elif not line.startswith("#") and pending is not None:
            pending.uri = line
            playlist.variants.append(pending)
            pending = None
    return playlist


def _decode_media(lines):
    playlist = _MediaPlaylist()
    duration = 0.0
    limit = 0
    for line in lines:
        if line.startswith("#EXTINF:"):
            duration = _to_float(line[len("#EXTINF:"):].split(",", 1)[0])
        elif line.startswith("#EXT-X-MEDIA-SEQUENCE:"):
            playlist.media_sequence = _to_int(line.partition(":")[2])
        elif line.startswith("#EXT-X-KEY:"):
            if playlist.key is None:
                attrs = _attributes(line)
                playlist.key = _Key(
                    method=attrs.get("METHOD", ""),
                    uri=attrs.get("URI", ""),
                    iv=attrs.get("IV", ""),
                )
        elif line.startswith("#EXT-X-MAP:"):
            playlist.map_uri = _attributes(line).get("URI", "")
        elif line.startswith("#EXT-X-BYTERANGE:"):
            limit = _to_int(line.partition(":")[2].split("@", 1)[0])
        elif not line.startswith("#"):
            playlist.segments.append(_Segment(uri=line, duration=duration, limit=limit))
            duration = 0.0
            limit = 0
    return playlist


def _decode(content):
    text = content.decode("utf-8", "replace") if isinstance(content, (bytes, bytearray)) else content
    lines = [line.strip() for line in text.lstrip("\ufeff").splitlines()]
    lines = [line for line in lines if line]
    if not lines or not lines[0].startswith("#EXTM3U"):
        raise ValueError("#EXTM3U absent")
    body = lines[1:]
    if any(line.startswith(_MASTER_TAGS) for line in body):
        return _decode_master(body)
    if any(line.startswith(_MEDIA_TAGS) for line in body):
        return _decode_media(body)
    raise ValueError("can't detect playlist type")


def parse_resolution(resolution):
    """Split a 'WIDTHxHEIGHT' string into two ints; unparsable parts give 0."""
    if not resolution:
        return 0, 0
    parts = resolution.split("x")
    if len(parts) != 2:
        return 0, 0
    return _to_int(parts[0]), _to_int(parts[1])


def resolve_url(base, uri):
    """Resolve ``uri`` against ``base`` unless it is already an absolute http(s) URL."""
    if uri.startswith(("http://", "https://")):
        return uri
    try:
        return urljoin(base, uri)
    except ValueError:
        return uri


def _remaining(deadline):
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("context deadline exceeded")
    return left


def _fetch(url, cookies, deadline):
    return fetch_content(url, cookies, timeout=_remaining(deadline))


def _nested_options(options):
    return ParseOptions(
        enable_concurrent_fetch=False, max_concurrency=1, timeout=options.timeout
    )


def _enrich(dst, src):
    if src.segments is not None:
        dst.segments = src.segments
    if src.init_segment:
        dst.init_segment = src.init_segment
    if src.duration > 0:
        dst.duration = src.duration
    if src.decryption_key is not None:
        dst.decryption_key = src.decryption_key


def _extract_segments(playlist, base):
    init_segment = resolve_url(base, playlist.map_uri) if playlist.map_uri else ""
    segments = []
    total = 0.0
    for segment in playlist.segments:
        if not segment.uri:
            continue
        segments.append(resolve_url(base, segment.uri))
        total += segment.duration
        # byte-range segments are not supported
        if segment.limit > 0:
            break
    return segments, init_segment, total


def _handle_encryption(playlist, base, cookies, fmt, deadline):
    key = playlist.key
    if key is None or not key.uri:
        return
    key_url = resolve_url(base, key.uri)
    try:
        key_bytes = _fetch(key_url, cookies, deadline)
    except OSError as exc:
        raise ConnectionError(f"failed to fetch encryption key: {exc}") from exc
    try:
        iv = parse_hex(key.iv)
    except ValueError as exc:
        raise ValueError(f"invalid initialization vector: {exc}") from exc
    fmt.decryption_key = DecryptionKey(
        method=key.method,
        key=key_bytes,
        iv=iv,
        media_sequence=playlist.media_sequence,
    )


def _parse_media_playlist(playlist, base, cookies, deadline):
    segments, init_segment, total = _extract_segments(playlist, base)
    fmt = MediaFormat(
        format_id="hls",
        duration=int(total),
        url=[base],
        segments=segments,
        init_segment=init_segment,
    )
    _handle_encryption(playlist, base, cookies, fmt, deadline)
    return [fmt]


def _alternative_codec(variants, alternative):
    if not alternative.uri or alternative.type != "AUDIO":
        return None
    for variant in variants:
        if not variant.uri or variant.audio != alternative.group_id:
            continue
        codec = audio_codec(variant.codecs)
        if codec is not None:
            return codec
    return None


def _parse_alternative(variants, alternative, base, cookies, options, deadline):
    if not alternative.uri or alternative.type != "AUDIO":
        return None
    alt_url = resolve_url(base, alternative.uri)
    fmt = MediaFormat(
        format_id=f"hls-{alternative.group_id}",
        type=MediaType.AUDIO,
        audio_codec=_alternative_codec(variants, alternative),
        url=[alt_url],
    )
    try:
        content = _fetch(alt_url, cookies, deadline)
    except OSError as exc:
        logger.warning("failed to fetch alternative content: %s", exc)
        return None
    try:
        found = _parse(content, alt_url, cookies, _nested_options(options), deadline)
    except (OSError, ValueError) as exc:
        logger.warning("failed to parse alternative content: %s", exc)
        return None
    if found:
        _enrich(fmt, found[0])
    return fmt


def _process_alternatives(master, base, cookies, options, deadline):
    seen = set()
    formats = []
    for alternative in master.alternatives:
        if not alternative.group_id or alternative.group_id in seen:
            continue
        seen.add(alternative.group_id)
        fmt = _parse_alternative(
            master.variants, alternative, base, cookies, options, deadline
        )
        if fmt is not None:
            formats.append(fmt)
    return formats


def _process_variant(variant, base, cookies, options, deadline):
    width, height = parse_resolution(variant.resolution)
    v_codec = video_codec(variant.codecs)
    a_codec = audio_codec(variant.codecs)
    if v_codec is not None:
        media_type = MediaType.VIDEO
    elif a_codec is not None:
        media_type = MediaType.AUDIO
    else:
        media_type = None
    variant_url = resolve_url(base, variant.uri)
    # the audio comes from a separate rendition
    if variant.audio:
        a_codec = None

    fmt = MediaFormat(
        format_id=f"hls-{variant.bandwidth // 1000}",
        type=media_type,
        video_codec=v_codec,
        audio_codec=a_codec,
        bitrate=variant.bandwidth,
        width=width,
        height=height,
        url=[variant_url],
    )
    try:
        content = _fetch(variant_url, cookies, deadline)
    except OSError as exc:
        raise ConnectionError(f"failed to fetch variant content: {exc}") from exc
    try:
        found = _parse(content, variant_url, cookies, _nested_options(options), deadline)
    except (OSError, ValueError) as exc:
        raise ValueError(f"failed to parse variant content: {exc}") from exc
    if found:
        _enrich(fmt, found[0])
    return fmt


def _process_variants_sequential(variants, base, cookies, options, deadline):
    formats = []
    for variant in variants:
        if not variant.uri:
            continue
        try:
            fmt = _process_variant(variant, base, cookies, options, deadline)
        except (OSError, ValueError) as exc:
            logger.warning("skipping variant due to: %s", exc)
            continue
        if fmt is not None:
            formats.append(fmt)
    return formats


def _process_variants_concurrent(variants, base, cookies, options, deadline):
    valid = [variant for variant in variants if variant.uri]
    if not valid:
        return []
    with ThreadPoolExecutor(max_workers=max(1, options.max_concurrency)) as pool:
        futures = [
            pool.submit(_process_variant, variant, base, cookies, options, deadline)
            for variant in valid
        ]
        _, pending = wait(futures, timeout=max(0.0, deadline - time.monotonic()))
        if pending:
            for future in pending:
                future.cancel()
            raise TimeoutError("context deadline exceeded")
    formats = []
    for future in futures:
        exc = future.exception()
        if exc is None:
            fmt = future.result()
            if fmt is not None:
                formats.append(fmt)
        elif isinstance(exc, (OSError, ValueError)):
            logger.warning("variant processing error: %s", exc)
        else:
            raise exc
    return formats


def _parse_master_playlist(master, base, cookies, options, deadline):
    if not master.variants:
        raise ValueError("no variants found in master playlist")
    formats = _process_alternatives(master, base, cookies, options, deadline)
    if not options.enable_concurrent_fetch or len(master.variants) <= 1:
        formats.extend(
            _process_variants_sequential(master.variants, base, cookies, options, deadline)
        )
    else:
        formats.extend(
            _process_variants_concurrent(master.variants, base, cookies, options, deadline)
        )
    return formats


def _parse(content, base_url, cookies, options, deadline):
    try:
        urlsplit(base_url)
    except ValueError as exc:
        raise ValueError(f"invalid base URL {base_url!r}: {exc}") from exc
    try:
        playlist = _decode(content)
    except ValueError as exc:
        raise ValueError(f"failed parsing M3U8: {exc}") from exc
    deadline = min(deadline, time.monotonic() + options.timeout)
    if isinstance(playlist, _MasterPlaylist):
        logger.debug("detected master playlist")
        return _parse_master_playlist(playlist, base_url, cookies, options, deadline)
    logger.debug("detected media playlist")
    return _parse_media_playlist(playlist, base_url, cookies, deadline)


def parse_m3u8_content(content, base_url, cookies=None, options=None):
    """Parse an M3U8 playlist into media formats.

    A master playlist has its audio renditions and variants fetched and
    parsed; a media playlist yields a single format with its segments.
    """
    options = options if options is not None else default_parse_options()
    return _parse(content, base_url, cookies, options, float("inf"))


def parse_m3u8_from_url(url, cookies=None):
    """Fetch an M3U8 playlist and parse it with the default options."""
    try:
        body = fetch_content(url, cookies)
    except OSError as exc:
        raise ConnectionError(f"failed to fetch M3U8 content: {exc}") from exc
    return parse_m3u8_content(body, url, cookies)