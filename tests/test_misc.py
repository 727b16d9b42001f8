from datetime import timedelta

import pytest
import requests
import responses

from mediafetch.misc import (
    CHROME_UA,
    escape_caption,
    exceeds_max_duration,
    exceeds_max_file_size,
    fetch_page,
    fix_url,
    get_cookie_by_name,
    get_location_url,
    parse_cookie_file,
    parse_hex,
    random_alpha_string,
    random_base64,
    redact_urls,
)

REDACTED = "&lt;redacted&gt;"


def test_exceeds_max_file_size():
    assert exceeds_max_file_size(11, 10) is True
    assert exceeds_max_file_size(10, 10) is False


def test_exceeds_max_duration_with_timedelta_and_number():
    assert exceeds_max_duration(61, timedelta(seconds=60)) is True
    assert exceeds_max_duration(60, timedelta(seconds=60.9)) is False
    assert exceeds_max_duration(30, 60) is False


def test_escape_caption_only_escapes_angle_brackets():
    assert escape_caption("<b>&") == "&lt;b&gt;&"


def test_fix_url():
    assert fix_url("https://example.com/?a=1&amp;b=2") == "https://example.com/?a=1&b=2"


def test_redact_urls():
    assert redact_urls("see https://example.com/x?y=1 now") == f"see {REDACTED} now"
    assert redact_urls("host 10.0.0.1 down") == f"host {REDACTED} down"
    assert redact_urls("nothing here") == "nothing here"


def test_random_base64_alphabet_and_length():
    value = random_base64(200)
    assert len(value) == 200
    assert set(value) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
    assert random_base64(0) == ""


def test_random_alpha_string():
    value = random_alpha_string(150)
    assert len(value) == 150
    assert value.isascii() and value.isalpha()


def test_parse_hex_accepts_prefix():
    assert parse_hex("0x" + "00" * 16) == bytes(16)
    assert parse_hex("FF" * 16) == b"\xff" * 16


@pytest.mark.parametrize("text", ["abc", "zz" * 16, "00" * 8])
def test_parse_hex_rejects_bad_input(text):
    with pytest.raises(ValueError):
        parse_hex(text)


def _write_cookies(tmp_path):
    (tmp_path / "site.txt").write_text(
        "# Netscape HTTP Cookie File\n"
        "\n"
        ".example.com\tTRUE\t/\tTRUE\t0\tsession\tplaceholder\n"
        "#HttpOnly_.example.com\tTRUE\t/app\tFALSE\t2000000000\tprefs\tdark\n",
        encoding="utf-8",
    )


def test_parse_cookie_file(tmp_path):
    _write_cookies(tmp_path)
    cookies = parse_cookie_file("site.txt", tmp_path)
    assert [c.name for c in cookies] == ["session", "prefs"]
    assert cookies[0].value == "placeholder"
    assert cookies[0].secure is True
    assert cookies[1].path == "/app"
    assert cookies[1].has_nonstandard_attr("HttpOnly")


def test_parse_cookie_file_is_cached(tmp_path):
    _write_cookies(tmp_path)
    first = parse_cookie_file("site.txt", tmp_path)
    (tmp_path / "site.txt").write_text("", encoding="utf-8")
    assert parse_cookie_file("site.txt", tmp_path) is first


def test_parse_cookie_file_missing(tmp_path):
    with pytest.raises(OSError):
        parse_cookie_file("missing.txt", tmp_path)


def test_parse_cookie_file_malformed(tmp_path):
    (tmp_path / "bad.txt").write_text("only\ttwo\n", encoding="utf-8")
    with pytest.raises(ValueError):
        parse_cookie_file("bad.txt", tmp_path)


def test_get_cookie_by_name(tmp_path):
    _write_cookies(tmp_path)
    cookies = parse_cookie_file("site.txt", tmp_path)
    assert get_cookie_by_name(cookies, "prefs").value == "dark"
    assert get_cookie_by_name(cookies, "absent") is None


def test_fetch_page_sets_default_user_agent_and_cookies(tmp_path):
    _write_cookies(tmp_path)
    cookies = parse_cookie_file("site.txt", tmp_path)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "https://example.com/page", body="ok")
        response = fetch_page(
            None, "GET", "https://example.com/page", None, {"X-Test": "1"}, cookies
        )
        sent = rsps.calls[0].request.headers
    assert response.text == "ok"
    assert sent["User-Agent"] == CHROME_UA
    assert sent["X-Test"] == "1"
    assert sent["Cookie"] == "session=placeholder; prefs=dark"


def test_fetch_page_keeps_given_user_agent():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, "https://example.com/api", body="done")
        session = requests.Session()
        response = fetch_page(
            session, "POST", "https://example.com/api", b"data", {"user-agent": "custom"}, None
        )
        request = rsps.calls[0].request
    assert response.text == "done"
    assert response.request.headers["User-Agent"] == "custom"
    assert request.headers["User-Agent"] == "custom"
    assert request.body == b"data"


def test_get_location_url_follows_redirects():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.HEAD,
            "https://example.com/short",
            status=302,
            headers={"Location": "https://example.com/long"},
        )
        rsps.add(responses.HEAD, "https://example.com/long", status=200)
        result = get_location_url(None, "https://example.com/short")
    assert result == "https://example.com/long"


def test_get_location_url_falls_back_to_get():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.HEAD, "https://example.com/a", body=requests.ConnectionError("no head")
        )
        rsps.add(responses.GET, "https://example.com/a", status=200)
        result = get_location_url(None, "https://example.com/a")
        methods = [call.request.method for call in rsps.calls]
    assert result == "https://example.com/a"
    assert methods == ["HEAD", "GET"]


def test_get_location_url_fails():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.HEAD, "https://example.com/b", body=requests.ConnectionError("x"))
        rsps.add(responses.GET, "https://example.com/b", body=requests.ConnectionError("y"))
        with pytest.raises(ConnectionError, match="failed to get location url"):
            get_location_url(None, "https://example.com/b")