import pytest
import responses

from mediafetch.formats import MediaCodec, MediaType, ParseOptions
from mediafetch.mpd import (
    expand_segment_template,
    parse_duration,
    parse_mpd_content,
    parse_mpd_from_url,
)

BASE = "https://example.com/dash/manifest.mpd"
NS = 'xmlns="urn:mpeg:dash:schema:mpd:2011" xmlns:cenc="urn:mpeg:cenc:2013"'

TEMPLATE_MPD = f"""<?xml version="1.0"?>
<MPD {NS} mediaPresentationDuration="PT20S">
  <Period>
    <AdaptationSet mimeType="video/mp4">
      <SegmentTemplate initialization="$RepresentationID$/init.mp4"
                       media="$RepresentationID$/seg-$Number$.m4s"
                       duration="4000" timescale="1000"/>
      <Representation id="v1" bandwidth="2500000" width="1280" height="720" codecs="avc1.64001f"/>
    </AdaptationSet>
    <AdaptationSet mimeType="audio/mp4">
      <Representation id="a1" bandwidth="128000" codecs="mp4a.40.2"/>
    </AdaptationSet>
  </Period>
</MPD>"""


def test_expand_template_with_width():
    result = expand_segment_template("$RepresentationID$/seg-$Number%05d$.m4s", "v1", None, 7, 0)
    assert result == "v1/seg-00007.m4s"


def test_expand_template_time_and_bandwidth():
    result = expand_segment_template("$Bandwidth$-$Time$", None, 128000, 1, 900)
    assert result == "128000-900"


def test_expand_template_keeps_unknown_and_missing():
    template = "$RepresentationID$/$Foo$/$Bandwidth$"
    assert expand_segment_template(template, None, None, 1, 0) == template


def test_parse_duration_values():
    assert parse_duration("PT30S") == 30
    assert parse_duration("PT1H2M3S") == 3723
    assert parse_duration("PT10.9S") == 10


@pytest.mark.parametrize("text", ["", "P", "PT", "1H", "PTxS"])
def test_parse_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_template_manifest_formats():
    formats = parse_mpd_content(TEMPLATE_MPD.encode(), BASE)
    assert [f.format_id for f in formats] == ["dash-2500", "dash-128"]
    video, audio = formats
    assert video.type is MediaType.VIDEO
    assert video.video_codec is MediaCodec.AVC
    assert (video.width, video.height) == (1280, 720)
    assert video.bitrate == 2500000
    assert video.duration == 20
    assert video.url == [BASE]
    assert video.init_segment == "https://example.com/dash/v1/init.mp4"
    assert video.segments[0] == "https://example.com/dash/v1/seg-1.m4s"
    assert len(video.segments) == 5
    assert len(set(video.segments)) == len(video.segments)
    assert audio.type is MediaType.AUDIO
    assert audio.audio_codec is MediaCodec.AAC
    assert audio.segments is None


def test_sequential_and_concurrent_agree():
    sequential = parse_mpd_content(
        TEMPLATE_MPD, BASE, options=ParseOptions(enable_concurrent_fetch=False)
    )
    concurrent = parse_mpd_content(TEMPLATE_MPD, BASE, options=ParseOptions())
    assert sequential == concurrent


def test_timeline_segments():
    mpd = f"""<MPD {NS}>
      <Period><AdaptationSet contentType="video">
        <Representation id="r" bandwidth="1000">
          <SegmentTemplate media="chunk-$Time$-$Number$.m4s" startNumber="3">
            <SegmentTimeline>
              <S t="0" d="100" r="2"/>
              <S d="50"/>
            </SegmentTimeline>
          </SegmentTemplate>
        </Representation>
      </AdaptationSet></Period></MPD>"""
    (fmt,) = parse_mpd_content(mpd, BASE)
    assert fmt.type is MediaType.VIDEO
    assert fmt.segments == [
        "https://example.com/dash/chunk-0-3.m4s",
        "https://example.com/dash/chunk-100-4.m4s",
        "https://example.com/dash/chunk-200-5.m4s",
        "https://example.com/dash/chunk-300-6.m4s",
    ]


def test_base_urls_are_resolved():
    mpd = f"""<MPD {NS}>
      <BaseURL>https://cdn.example.com/media/</BaseURL>
      <Period><AdaptationSet mimeType="audio/mp4">
        <Representation id="a" bandwidth="64000"><BaseURL>audio/track.mp4</BaseURL></Representation>
      </AdaptationSet></Period></MPD>"""
    (fmt,) = parse_mpd_content(mpd, BASE)
    assert fmt.url == ["https://cdn.example.com/media/audio/track.mp4"]


def test_content_protection_key():
    kid = "00112233445566778899aabbccddeeff"
    mpd = f"""<MPD {NS}>
      <Period><AdaptationSet mimeType="video/mp4">
        <ContentProtection schemeIdUri="urn:mpeg:dash:mp4protection:2011" value="cenc"
                           cenc:default_KID="{kid}"/>
        <Representation id="v" bandwidth="1000"/>
      </AdaptationSet></Period></MPD>"""
    (fmt,) = parse_mpd_content(mpd, BASE)
    assert fmt.decryption_key.method == "AES-128"
    assert fmt.decryption_key.key == bytes.fromhex(kid)


def test_representations_without_id_or_bandwidth_are_skipped():
    mpd = f"""<MPD {NS}>
      <Period><AdaptationSet mimeType="video/mp4">
        <Representation bandwidth="1000"/>
        <Representation id="x"/>
        <Representation id="ok" bandwidth="3000"/>
      </AdaptationSet></Period></MPD>"""
    formats = parse_mpd_content(mpd, BASE)
    assert [f.bitrate for f in formats] == [3000]


def test_missing_duration_gives_single_template_segment():
    mpd = f"""<MPD {NS}>
      <Period><AdaptationSet mimeType="video/mp4">
        <SegmentTemplate media="s$Number$.ts"/>
        <Representation id="v" bandwidth="1000"/>
      </AdaptationSet></Period></MPD>"""
    (fmt,) = parse_mpd_content(mpd, BASE)
    assert fmt.segments == ["https://example.com/dash/s1.ts"]
    assert fmt.duration == 0


def test_no_periods():
    with pytest.raises(ValueError, match="no periods"):
        parse_mpd_content(f"<MPD {NS}></MPD>", BASE)


def test_no_adaptation_sets():
    with pytest.raises(ValueError, match="no adaptation sets"):
        parse_mpd_content(f"<MPD {NS}><Period/></MPD>", BASE)


def test_invalid_xml():
    with pytest.raises(ValueError, match="failed parsing MPD"):
        parse_mpd_content(b"<MPD", BASE)


def test_parse_from_url():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE, body=TEMPLATE_MPD, status=200)
        formats = parse_mpd_from_url(BASE)
    assert [f.format_id for f in formats] == ["dash-2500", "dash-128"]


def test_parse_from_url_http_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE, status=404)
        with pytest.raises(ConnectionError, match="failed to fetch MPD content"):
            parse_mpd_from_url(BASE)