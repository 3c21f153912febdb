"""Manifest rewriting tests."""

import pytest

from streamproxy.errors import RewriteFailure
from streamproxy.rewriter import LineKind, classify_line, rewrite, rewrite_body, scan

ORIGIN_BASE = "https://origin.example/hls"
PROXY_BASE = "http://proxy.test/1001"
MASTER_URL = "https://origin.example/hls/index.m3u8?token=abc"

MASTER = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-STREAM-INF:BANDWIDTH=1280000,RESOLUTION=1280x720
720p/chunklist.m3u8?nimblesessionid=42
#EXT-X-STREAM-INF:BANDWIDTH=640000,RESOLUTION=640x360
https://origin.example/hls/360p/chunklist.m3u8?nimblesessionid=42
"""

MEDIA = """#EXTM3U
#EXT-X-TARGETDURATION:6
#EXT-X-MEDIA-SEQUENCE:1001
#EXT-X-KEY:METHOD=AES-128,URI="https://origin.example/hls/keys/key.bin",IV=0x1234
#EXTINF:6.000,
media_1001.ts?nimblesessionid=42

#EXTINF:6.000,
/hls/720p/media_1002.ts
#EXTINF:6.000,
https://origin.example/hls/720p/media_1003.ts
"""


def _rewrite(text, final_url=MASTER_URL, origin_base=ORIGIN_BASE):
    return rewrite(text, PROXY_BASE, origin_base, final_url)


def test_master_playlist_variants_point_at_proxy():
    out = _rewrite(MASTER)
    lines = out.split("\n")
    assert lines[3] == f"{PROXY_BASE}/720p/chunklist.m3u8?nimblesessionid=42"
    assert lines[5] == f"{PROXY_BASE}/360p/chunklist.m3u8?nimblesessionid=42"


def test_tag_lines_pass_through():
    out = _rewrite(MASTER)
    for original, rewritten in zip(MASTER.split("\n"), out.split("\n")):
        if original.startswith("#"):
            assert original == rewritten


def test_media_playlist_references():
    out = _rewrite(MEDIA, final_url="https://origin.example/hls/720p/chunklist.m3u8?nimblesessionid=42")
    lines = out.split("\n")
    assert lines[5] == f"{PROXY_BASE}/720p/media_1001.ts?nimblesessionid=42"
    assert lines[6] == ""
    assert lines[8] == f"{PROXY_BASE}/720p/media_1002.ts"
    assert lines[10] == f"{PROXY_BASE}/720p/media_1003.ts"


def test_no_upstream_origin_left_behind():
    for text in (MASTER, MEDIA):
        out = _rewrite(text)
        assert "origin.example" not in out


@pytest.mark.parametrize("text", [MASTER, MEDIA, "", "\n\n", "#EXTM3U\r\n#EXTINF:4,\r\nseg.ts\r\n"])
def test_rewrite_is_idempotent(text):
    once = _rewrite(text)
    assert _rewrite(once) == once


def test_key_uri_absolute_keeps_only_filename():
    line = '#EXT-X-KEY:METHOD=AES-128,URI="http://origin/path/key.bin"'
    assert _rewrite(line) == f'#EXT-X-KEY:METHOD=AES-128,URI="{PROXY_BASE}/key.bin"'


def test_key_uri_relative_is_prefixed():
    line = '#EXT-X-KEY:METHOD=AES-128,URI="key.bin",IV=0x01'
    assert _rewrite(line) == f'#EXT-X-KEY:METHOD=AES-128,URI="{PROXY_BASE}/key.bin",IV=0x01'


def test_key_uri_keeps_query_token():
    line = '#EXT-X-KEY:METHOD=AES-128,URI="https://keys.example/k/42.key?token=t"'
    assert _rewrite(line) == f'#EXT-X-KEY:METHOD=AES-128,URI="{PROXY_BASE}/42.key?token=t"'


def test_key_uri_with_leading_slash_gets_single_separator():
    line = '#EXT-X-KEY:METHOD=AES-128,URI="/keys/key.bin"'
    assert _rewrite(line) == f'#EXT-X-KEY:METHOD=AES-128,URI="{PROXY_BASE}/keys/key.bin"'


def test_media_tag_uri_rewritten():
    line = '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",NAME="en",URI="audio/en.m3u8"'
    assert _rewrite(line) == f'#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",NAME="en",URI="{PROXY_BASE}/audio/en.m3u8"'


def test_media_tag_absolute_uri_keeps_its_path():
    line = '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",URI="https://origin.example/hls/audio/en/chunklist.m3u8"'
    assert _rewrite(line) == f'#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aac",URI="{PROXY_BASE}/audio/en/chunklist.m3u8"'


def test_map_uri_resolved_against_variant_directory():
    text = '#EXTM3U\n#EXT-X-MAP:URI="init.mp4"\n#EXTINF:4,\nseg_1.m4s\n'
    out = _rewrite(text, final_url="https://origin.example/hls/720p/chunklist.m3u8")
    assert out == (
        f'#EXTM3U\n#EXT-X-MAP:URI="{PROXY_BASE}/720p/init.mp4"\n'
        f"#EXTINF:4,\n{PROXY_BASE}/720p/seg_1.m4s\n"
    )
    assert _rewrite(out, final_url="https://origin.example/hls/720p/chunklist.m3u8") == out


def test_session_key_uses_key_rule():
    line = '#EXT-X-SESSION-KEY:METHOD=AES-128,URI="https://origin.example/hls/k/key.bin"'
    assert _rewrite(line) == f'#EXT-X-SESSION-KEY:METHOD=AES-128,URI="{PROXY_BASE}/key.bin"'


def test_origin_urls_in_other_tag_attributes_rewritten():
    line = (
        '#EXT-X-DATERANGE:ID="ad1",CLASS="com.apple.hls.interstitials",'
        'START-DATE="2024-01-01T00:00:00Z",X-ASSET-URI="https://origin.example/hls/ad/index.m3u8"'
    )
    out = _rewrite(line)
    assert "origin.example" not in out
    assert f'X-ASSET-URI="{PROXY_BASE}/ad/index.m3u8"' in out
    assert _rewrite(out) == out


def test_origin_url_outside_base_in_tag_goes_through_tunnel():
    line = '#EXT-X-SESSION-DATA:DATA-ID="com.example.info",VALUE="https://origin.example/about.json"'
    out = _rewrite(line)
    assert out == (
        '#EXT-X-SESSION-DATA:DATA-ID="com.example.info",'
        f'VALUE="{PROXY_BASE}/__proxy__/https%3A%2F%2Forigin.example%2Fabout.json"'
    )


def test_uri_attribute_after_space_rewritten():
    line = '#EXT-X-KEY:METHOD=AES-128, URI="key.bin"'
    assert _rewrite(line) == f'#EXT-X-KEY:METHOD=AES-128, URI="{PROXY_BASE}/key.bin"'


def test_foreign_urls_in_tags_left_alone():
    line = '#EXT-X-SESSION-DATA:DATA-ID="com.example.link",VALUE="https://www.example.org/info"'
    assert _rewrite(line) == line


def test_drm_key_uri_left_alone():
    line = '#EXT-X-KEY:METHOD=SAMPLE-AES,URI="skd://key-id",KEYFORMAT="com.apple.streamingkeydelivery"'
    assert _rewrite(line) == line


def test_unterminated_uri_attribute_fails():
    with pytest.raises(RewriteFailure):
        _rewrite('#EXT-X-KEY:METHOD=AES-128,URI="key.bin')


def test_redirected_manifest_tunnels_foreign_host():
    out = _rewrite("seg_1.ts?x=1", final_url="https://edge7.example/a/index.m3u8")
    assert out == f"{PROXY_BASE}/__proxy__/https%3A%2F%2Fedge7.example%2Fa%2Fseg_1.ts%3Fx%3D1"
    assert "edge7.example/" not in out


def test_absolute_foreign_reference_tunnels():
    out = _rewrite("https://cdn.example/x/seg.ts")
    assert out == f"{PROXY_BASE}/__proxy__/https%3A%2F%2Fcdn.example%2Fx%2Fseg.ts"


def test_smil_origin_base_stripped():
    origin_base = "https://wowza.example/live/smil:stream.smil"
    out = rewrite(
        "chunklist_w1_b800000.m3u8?wowzasessionid=9",
        "http://proxy.test/wowza",
        origin_base,
        "https://wowza.example/live/smil:stream.smil/playlist.m3u8?wowzasessionid=9",
    )
    assert out == "http://proxy.test/wowza/chunklist_w1_b800000.m3u8?wowzasessionid=9"


def test_blank_lines_and_crlf_preserved():
    text = "#EXTM3U\r\n\r\n   \r\n#EXTINF:4,\r\nseg.ts\r\n"
    out = _rewrite(text)
    assert out == f"#EXTM3U\r\n\r\n   \r\n#EXTINF:4,\r\n{PROXY_BASE}/seg.ts\r\n"


def test_proxy_base_trailing_slash_is_ignored():
    out = rewrite("seg.ts", PROXY_BASE + "/", ORIGIN_BASE, MASTER_URL)
    assert out == f"{PROXY_BASE}/seg.ts"


def test_scan_tags_each_line():
    kinds = [line.kind for line in scan('#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI="k"\n\nseg.ts')]
    assert kinds == [LineKind.COMMENT, LineKind.KEY_ATTRIBUTE, LineKind.BLANK, LineKind.REFERENCE]


def test_uri_must_start_an_attribute():
    assert classify_line('#EXT-X-FOO:MYURI="a"') is LineKind.COMMENT


def test_rewrite_body_rejects_invalid_utf8():
    with pytest.raises(RewriteFailure):
        rewrite_body(b"#EXTM3U\n\xff\xfe\xfaseg.ts\n", PROXY_BASE, ORIGIN_BASE, MASTER_URL)


def test_rewrite_body_strips_bom():
    out = rewrite_body("\ufeff#EXTM3U\nseg.ts".encode("utf-8"), PROXY_BASE, ORIGIN_BASE, MASTER_URL)
    assert out == f"#EXTM3U\n{PROXY_BASE}/seg.ts".encode("utf-8")
