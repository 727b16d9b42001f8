# mediafetch

Building blocks for working with streamed media over HTTP:

- parsing of HLS (`.m3u8`) playlists and DASH (`.mpd`) manifests into a list of
  `MediaFormat` objects (`mediafetch.m3u8`, `mediafetch.mpd`, `mediafetch.formats`)
- AES-128-CBC decryption of HLS segments, with the per-segment IV taken from the
  media sequence number (`mediafetch.decrypt`)
- concatenation of downloaded segments into one file (`mediafetch.segments`)
- a shared HTTP session, proxy selection and an edge-proxy client (`mediafetch.networking`)
- helpers for URLs, captions, cookie files, hex values and random strings (`mediafetch.misc`)
- tracking of open files and clean-up of old downloads (`mediafetch.files`)
- lookup of a key path anywhere in decoded JSON (`mediafetch.traverse`)

## Installation

```
pip install mediafetch
```

For running the tests:

```
pip install "mediafetch[test]"
pytest
```

## Parsing a manifest

```python
from mediafetch.m3u8 import parse_m3u8_from_url
from mediafetch.mpd import parse_mpd_content

formats = parse_m3u8_from_url("https://media.example.com/master.m3u8")
for fmt in formats:
    print(fmt.format_id, fmt.type, fmt.width, fmt.height, len(fmt.segments or []))

with open("manifest.mpd", "rb") as fh:
    dash = parse_mpd_content(fh.read(), "https://media.example.com/")
```

For a master playlist, every audio rendition and every variant playlist is
fetched and parsed; variants that fail are skipped with a warning. A media
playlist gives a single format with its segment URLs, and a `DecryptionKey`
when the playlist carries an `#EXT-X-KEY` (the key is fetched from its URI).
For DASH, the first period is used and each representation with an id and a
bandwidth becomes one format; segment lists come from `SegmentTemplate`
timelines or from the presentation duration.

Parsing is controlled by `ParseOptions` (`enable_concurrent_fetch`,
`max_concurrency`, `timeout`); `default_parse_options()` returns the defaults
of concurrent fetching, 10 workers and 30 seconds. `video_codec()` and
`audio_codec()` map a `CODECS` string to a `MediaCodec`.

`mediafetch.mpd.expand_segment_template()` and `parse_duration()`, and
`mediafetch.m3u8.parse_resolution()` and `resolve_url()`, are usable on their own.

## Decrypting segments

```python
from mediafetch.decrypt import decrypt_segment_bytes, decrypt_segments_in_place, zero_iv

plain = decrypt_segment_bytes(encrypted, key, zero_iv(), media_sequence=0)
decrypt_segments_in_place(["seg0.ts", "seg1.ts"], key, zero_iv(), 0)
```

The IV for each segment is the base IV plus its sequence number. Bad keys,
IVs, lengths or padding raise `DecryptionError`. `decrypt_segments()` writes
`<name>_decrypted<ext>` beside each file instead of overwriting it; the
`*_with_sequences*` variants take one sequence number per segment.

## Merging segments

```python
from mediafetch.segments import merge_segments

merge_segments("init.mp4", ["seg0.m4s", "seg1.m4s"], "stream.mp4")
```

An existing init segment is written first. Missing segments are skipped; a
merge without an init segment that writes nothing raises `ValueError`.

## Networking

`default_session()` returns a shared `requests` session with a 60 second
timeout. `ProxySelector(http_proxy, https_proxy, no_proxy).select(url)`
chooses a proxy per scheme, honouring the no-proxy list.
`EdgeProxyClient(proxy_url).request(method, url)` sends a request to
`<proxy_url>?url=<target>` and rebuilds a `requests.Response` from the JSON
reply (`status_code`, `text`, `url`, `headers`, `cookies`).

## Finding a value in JSON

```python
from mediafetch.traverse import traverse_json

url = traverse_json(document, ["video", "url"])
```

`traverse_json` searches nested dicts and lists for the first path that
matches the given keys and returns `None` when there is none.

## What this package does not do

It does not download media files itself: there is no chunked or parallel
file downloader, no retry logic and no size-limited download to disk or
memory. Segment lists found by the parsers must be fetched by the caller
before they are decrypted and merged. It also has no image format
detection or conversion, no remuxing or transcoding of media, and no
command-line program.