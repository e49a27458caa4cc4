from datetime import datetime, timezone

from conftest import VOD_PLAYLIST

from reelstream.services.hls_playlist import (
    LIVE_PLAYLIST_NAME,
    parse_playlist,
    render_live_playlist,
    write_live_playlist,
)

STARTED_AT = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_parse_vod_playlist():
    playlist = parse_playlist(VOD_PLAYLIST)
    assert playlist.target_duration == 10
    assert playlist.playlist_type == "VOD"
    assert playlist.end_list
    assert [s.uri for s in playlist.segments] == ["segment00000.ts", "segment00001.ts"]
    assert playlist.total_duration == 14.5


def test_live_playlist_has_no_endlist_and_dated_segments():
    live = render_live_playlist(parse_playlist(VOD_PLAYLIST), STARTED_AT)

    assert "#EXT-X-ENDLIST" not in live
    assert "#EXT-X-PLAYLIST-TYPE:EVENT" in live
    assert "#EXT-X-PROGRAM-DATE-TIME:2024-05-01T12:00:00.000+00:00" in live
    assert "#EXT-X-PROGRAM-DATE-TIME:2024-05-01T12:00:10.000+00:00" in live
    assert live.index("segment00000.ts") < live.index("segment00001.ts")


def test_live_window_keeps_newest_segments():
    live = render_live_playlist(parse_playlist(VOD_PLAYLIST), STARTED_AT, window_segments=1)

    assert "segment00000.ts" not in live
    assert "segment00001.ts" in live
    assert "#EXT-X-MEDIA-SEQUENCE:1" in live
    assert "#EXT-X-PROGRAM-DATE-TIME:2024-05-01T12:00:10.000+00:00" in live
    # a sliding window removes segments, which an EVENT playlist may not do
    assert "#EXT-X-PLAYLIST-TYPE" not in live


def test_window_wider_than_playlist_stays_event():
    live = render_live_playlist(parse_playlist(VOD_PLAYLIST), STARTED_AT, window_segments=5)
    assert "#EXT-X-PLAYLIST-TYPE:EVENT" in live
    assert "#EXT-X-MEDIA-SEQUENCE:0" in live


def test_write_live_playlist_beside_vod(tmp_path):
    vod_path = tmp_path / "index.m3u8"
    vod_path.write_text(VOD_PLAYLIST)

    live_path = write_live_playlist(str(vod_path), started_at=STARTED_AT)

    assert live_path == str(tmp_path / LIVE_PLAYLIST_NAME)
    assert parse_playlist((tmp_path / LIVE_PLAYLIST_NAME).read_text()).segments == \
        parse_playlist(VOD_PLAYLIST).segments
    assert not (tmp_path / "live.m3u8.tmp").exists()
