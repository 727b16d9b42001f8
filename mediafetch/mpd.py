"""MPEG-DASH (MPD) manifest parsing into media formats."""

from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit

from .formats import (
    DecryptionKey,
    MediaFormat,
    MediaType,
    audio_codec,
    default_parse_options,
    fetch_content,
    video_codec,
)
from .m3u8 import resolve_url
from .misc import parse_hex

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"\$([A-Za-z]+)(?:%0(\d+)d)?\$")
_DURATION_RE = re.compile(
    r"^-?P(?:(\d+)Y)?(?:(\d+)M)?(?:(\d+)D)?"
    r"(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d*)?)S)?)?$"
)
_DEFAULT_SEGMENT_SECONDS = 10.0


@dataclass
class _TimelineEntry:
    t: int | None = None
    d: int = 0
    r: int | None = None


@dataclass
class _SegmentTemplate:
    initialization: str | None = None
    media: str | None = None
    start_number: int | None = None
    duration: int | None = None
    timescale: int | None = None
    timeline: list | None = None


@dataclass
class _Protection:
    scheme: str | None = None
    default_kid: str | None = None


@dataclass
class _Representation:
    id: str | None = None
    bandwidth: int | None = None
    width: int | None = None
    height: int | None = None
    codecs: str | None = None
    base_urls: list = field(default_factory=list)
    segment_template: _SegmentTemplate | None = None
    protections: list = field(default_factory=list)


@dataclass
class _AdaptationSet:
    mime_type: str = ""
    content_type: str | None = None
    codecs: str | None = None
    base_urls: list = field(default_factory=list)
    segment_template: _SegmentTemplate | None = None
    representations: list = field(default_factory=list)
    protections: list = field(default_factory=list)


@dataclass
class _Period:
    base_urls: list = field(default_factory=list)
    adaptation_sets: list = field(default_factory=list)


@dataclass
class _Manifest:
    base_urls: list = field(default_factory=list)
    duration_seconds: int = 0
    periods: list = field(default_factory=list)


def parse_duration(text):
    """Return the whole seconds of an xs:duration from its hour, minute and second parts.

    Year, month and day parts are accepted but do not count, and fractions of
    a second are dropped. Raises ValueError for text that is not a duration.
    """
    value = (text or "").strip()
    match = _DURATION_RE.match(value)
    if match is None or value.endswith("T") or not any(match.groups()):
        raise ValueError(f"invalid duration: {text!r}")
    hours, minutes, seconds = match.group(4), match.group(5), match.group(6)
    total = int(hours or 0) * 3600 + int(minutes or 0) * 60
    if seconds:
        total += int(float(seconds))
    return total


def expand_segment_template(template, representation_id=None, bandwidth=None, number=0, time=0):
    """Substitute $RepresentationID$, $Number$, $Time$ and $Bandwidth$ in a template.

    Number and Time honour a '%0<width>d' format; identifiers that are unknown
    or have no value are left as they are.
    """

    def replace(match):
        identifier = match.group(1)
        width = int(match.group(2) or 0)
        if identifier == "RepresentationID" and representation_id is not None:
            return representation_id
        if identifier in ("Number", "Time"):
            value = number if identifier == "Number" else time
            return f"{value:0{width}d}" if width > 0 else str(value)
        if identifier == "Bandwidth" and bandwidth is not None:
            return str(bandwidth)
        return match.group(0)

    return _TEMPLATE_RE.sub(replace, template)


# --- decoding -------------------------------------------------------------


def _local(name):
    return name.rsplit("}", 1)[-1]


def _children(element, name):
    return [child for child in element if _local(child.tag) == name]


def _child(element, name):
    found = _children(element, name)
    return found[0] if found else None


def _attr(element, name):
    return next((value for key, value in element.attrib.items() if _local(key) == name), None)


def _int_attr(element, name):
    value = _attr(element, name)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"invalid integer attribute {name}={value!r}") from exc


def _base_urls(element):
    return [(child.text or "").strip() for child in _children(element, "BaseURL")]


def _decode_template(element):
    if element is None:
        return None
    timeline_element = _child(element, "SegmentTimeline")
    timeline = None
    if timeline_element is not None:
        timeline = [
            _TimelineEntry(
                t=_int_attr(entry, "t"),
                d=_int_attr(entry, "d") or 0,
                r=_int_attr(entry, "r"),
            )
            for entry in _children(timeline_element, "S")
        ]
    return _SegmentTemplate(
        initialization=_attr(element, "initialization"),
        media=_attr(element, "media"),
        start_number=_int_attr(element, "startNumber"),
        duration=_int_attr(element, "duration"),
        timescale=_int_attr(element, "timescale"),
        timeline=timeline,
    )


def _decode_protections(element):
    return [
        _Protection(scheme=_attr(child, "schemeIdUri"), default_kid=_attr(child, "default_KID"))
        for child in _children(element, "ContentProtection")
    ]


def _decode_representation(element):
    return _Representation(
        id=_attr(element, "id"),
        bandwidth=_int_attr(element, "bandwidth"),
        width=_int_attr(element, "width"),
        height=_int_attr(element, "height"),
        codecs=_attr(element, "codecs"),
        base_urls=_base_urls(element),
        segment_template=_decode_template(_child(element, "SegmentTemplate")),
        protections=_decode_protections(element),
    )


def _decode_adaptation_set(element):
    return _AdaptationSet(
        mime_type=_attr(element, "mimeType") or "",
        content_type=_attr(element, "contentType"),
        codecs=_attr(element, "codecs"),
        base_urls=_base_urls(element),
        segment_template=_decode_template(_child(element, "SegmentTemplate")),
        representations=[
            _decode_representation(child) for child in _children(element, "Representation")
        ],
        protections=_decode_protections(element),
    )


def _decode(content):
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ValueError(str(exc)) from exc
    if _local(root.tag) != "MPD":
        raise ValueError(f"unexpected root element {_local(root.tag)!r}")
    duration = _attr(root, "mediaPresentationDuration")
    periods = [
        _Period(
            base_urls=_base_urls(period),
            adaptation_sets=[
                _decode_adaptation_set(child) for child in _children(period, "AdaptationSet")
            ],
        )
        for period in _children(root, "Period")
    ]
    return _Manifest(
        base_urls=_base_urls(root),
        duration_seconds=parse_duration(duration) if duration is not None else 0,
        periods=periods,
    )


# --- processing -----------------------------------------------------------


def _resolve_base(base, base_urls):
    if base_urls and base_urls[0]:
        try:
            return urljoin(base, base_urls[0])
        except ValueError:
            return base
    return base


def _media_type(adaptation_set, representation):
    codecs = representation.codecs if representation.codecs is not None else adaptation_set.codecs
    v_codec = video_codec(codecs or "")
    a_codec = audio_codec(codecs or "")
    mime_type = adaptation_set.mime_type.lower()
    media_type = None
    if mime_type.startswith("video/") or v_codec is not None:
        media_type = MediaType.VIDEO
    elif mime_type.startswith("audio/") or a_codec is not None:
        media_type = MediaType.AUDIO
    elif adaptation_set.content_type is not None:
        content_type = adaptation_set.content_type.lower()
        if content_type == "video":
            media_type = MediaType.VIDEO
        elif content_type == "audio":
            media_type = MediaType.AUDIO
    return media_type, v_codec, a_codec


def _segment_count(template, total_seconds):
    seconds = _DEFAULT_SEGMENT_SECONDS
    if template.duration is not None and template.timescale is not None:
        if template.timescale:
            seconds = template.duration / template.timescale
        elif template.duration:
            seconds = math.inf
        else:
            seconds = math.nan
        logger.debug(
            "segment duration calculation: %d / %d = %.4f seconds",
            template.duration, template.timescale, seconds,
        )
    if total_seconds > 0 and seconds > 0:
        count = math.ceil(total_seconds / seconds)
        logger.debug(
            "total duration: %d seconds, segment duration: %.4f seconds, segment count: %d",
            total_seconds, seconds, count,
        )
        return count
    return 1


def _timeline_segments(template, representation, base):
    if not template.timeline or template.media is None:
        return []
    number = template.start_number if template.start_number is not None else 1
    current = 0
    segments = []
    for entry in template.timeline:
        if entry.t is not None:
            current = entry.t
        for _ in range((entry.r or 0) + 1):
            media = expand_segment_template(
                template.media, representation.id, representation.bandwidth, number, current
            )
            segments.append(resolve_url(base, media))
            current += entry.d
            number += 1
    return segments


def _template_segments(template, representation, base, count):
    start = template.start_number if template.start_number is not None else 1
    return [
        resolve_url(
            base,
            expand_segment_template(
                template.media, representation.id, representation.bandwidth, start + offset, 0
            ),
        )
        for offset in range(count)
    ]


def _extract_segments(template, representation, base, total_seconds):
    init_segment = ""
    if template.initialization is not None:
        init = expand_segment_template(
            template.initialization, representation.id, representation.bandwidth, 0, 0
        )
        init_segment = resolve_url(base, init)
    segments = None
    if template.timeline is not None:
        segments = _timeline_segments(template, representation, base)
        logger.debug("extracted %d timeline segments", len(segments))
    elif template.media is not None:
        count = _segment_count(template, total_seconds)
        segments = _template_segments(template, representation, base, count)
        logger.debug("extracted %d template segments", len(segments))
    return segments or None, init_segment


def _apply_protection(adaptation_set, representation, fmt):
    protections = representation.protections or adaptation_set.protections
    for protection in protections:
        if protection.scheme is None:
            continue
        scheme = protection.scheme.lower()
        if "cenc" in scheme or "clearkey" in scheme:
            fmt.decryption_key = DecryptionKey(method="AES-128")
            if protection.default_kid is not None:
                try:
                    fmt.decryption_key.key = parse_hex(protection.default_kid)
                except ValueError:
                    pass
            break


def _process_representation(representation, adaptation_set, base, total_seconds):
    media_type, v_codec, a_codec = _media_type(adaptation_set, representation)
    representation_base = _resolve_base(base, representation.base_urls)
    fmt = MediaFormat(
        format_id=f"dash-{representation.bandwidth // 1000}",
        type=media_type,
        video_codec=v_codec,
        audio_codec=a_codec,
        bitrate=representation.bandwidth,
        width=representation.width or 0,
        height=representation.height or 0,
        url=[representation_base],
        duration=total_seconds,
    )
    template = representation.segment_template or adaptation_set.segment_template
    if template is not None:
        fmt.segments, fmt.init_segment = _extract_segments(
            template, representation, representation_base, total_seconds
        )
    _apply_protection(adaptation_set, representation, fmt)
    return fmt


def _process_adaptation_set(adaptation_set, base, total_seconds):
    adaptation_base = _resolve_base(base, adaptation_set.base_urls)
    return [
        _process_representation(representation, adaptation_set, adaptation_base, total_seconds)
        for representation in adaptation_set.representations
        if representation.id is not None and representation.bandwidth is not None
    ]


def _process_adaptation_sets(adaptation_sets, base, total_seconds, options):
    if not options.enable_concurrent_fetch or len(adaptation_sets) <= 1:
        groups = [_process_adaptation_set(s, base, total_seconds) for s in adaptation_sets]
    else:
        valid = [s for s in adaptation_sets if s.representations]
        with ThreadPoolExecutor(max_workers=max(1, options.max_concurrency)) as pool:
            try:
                groups = list(
                    pool.map(
                        lambda s: _process_adaptation_set(s, base, total_seconds),
                        valid,
                        timeout=options.timeout,
                    )
                )
            except FuturesTimeoutError as exc:
                raise TimeoutError("context deadline exceeded") from exc
    return [fmt for group in groups for fmt in group]


def parse_mpd_content(content, base_url, cookies=None, options=None):
    """Parse an MPD manifest into one media format per representation of its first period."""
    options = options if options is not None else default_parse_options()
    try:
        urlsplit(base_url)
    except ValueError as exc:
        raise ValueError(f"invalid base URL {base_url!r}: {exc}") from exc
    try:
        manifest = _decode(content)
    except ValueError as exc:
        raise ValueError(f"failed parsing MPD: {exc}") from exc
    logger.debug("detected mpd manifest")

    if not manifest.periods:
        raise ValueError("no periods found in mpd")
    period = manifest.periods[0]
    if not period.adaptation_sets:
        raise ValueError("no adaptation sets found in period")

    mpd_base = _resolve_base(base_url, manifest.base_urls)
    period_base = _resolve_base(mpd_base, period.base_urls)
    return _process_adaptation_sets(
        period.adaptation_sets, period_base, manifest.duration_seconds, options
    )


def parse_mpd_from_url(url, cookies=None):
    """Fetch an MPD manifest and parse it with the default options."""
    try:
        body = fetch_content(url, cookies)
    except OSError as exc:
        raise ConnectionError(f"failed to fetch MPD content: {exc}") from exc
    return parse_mpd_content(body, url, cookies)