import pytest
import spotipy

from conftest import fake_spotipy, page, playlist_item, raw_playlist, track_uri
from core.errors import AuthExpired, Cancelled, FetchError, NoPlaylists, RateLimited
from core.library_walker import LibraryWalker, is_valid_track_uri


def _library():
    local_item = {
        "is_local": True,
        "track": {"id": None, "uri": "spotify:local:Artist:Album:Song:215", "name": "Song",
                  "artists": [{"id": None, "name": "Artist"}]}
    }
    episode_item = playlist_item("spotify:episode:4rOoJ6Egrf8K2IrywzwOMk", ["show"])
    malformed_item = playlist_item("spotify:track:tooShort", ["a9"])

    playlists_first = page([raw_playlist("p1"), raw_playlist("p2")], next_url="playlists-2", total=3)
    pages_by_url = {
        "playlists-2": page([raw_playlist("p3")], total=3),
        "p1-2": page([playlist_item(track_uri(1), ["a1"]), episode_item]),
    }
    items_first = {
        "p1": page([playlist_item(track_uri(1), ["a1"]), playlist_item(track_uri(2), ["a2", "a1"]),
                    playlist_item(None), local_item], next_url="p1-2"),
        "p2": spotipy.SpotifyException(500, -1, "server error"),
        "p3": page([playlist_item(track_uri(3), ["a1"]), malformed_item]),
    }
    return fake_spotipy(pages_by_url, playlists_first, items_first)


def test_is_valid_track_uri():
    assert is_valid_track_uri("spotify:track:4uLU6hMCjMI75M1A2tKUQC")
    assert not is_valid_track_uri("spotify:episode:4uLU6hMCjMI75M1A2tKUQC")
    assert not is_valid_track_uri("spotify:local:a:b:c:1")
    assert not is_valid_track_uri("spotify:track:4uLU6hMCjMI75M1A2tKUQ")
    assert not is_valid_track_uri(None)


def test_walk_collects_unique_valid_tracks_and_artists(make_session, spotify_from):
    sp = _library()
    progress = []

    scan = LibraryWalker(make_session(spotify_from(sp))).walk(on_progress=lambda done, total: progress.append((done, total)))

    assert scan.track_uris == {track_uri(1), track_uri(2), track_uri(3)}
    assert scan.artist_ids == {"a1", "a2"}
    assert scan.playlist_count == 3
    # null track, local file, episode, malformed uri
    assert scan.skipped_items == 4
    assert scan.failed_playlists == ["p2"]
    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_playlists_are_requested_in_pages_of_fifty(make_session, spotify_from):
    sp = _library()

    LibraryWalker(make_session(spotify_from(sp))).walk()

    sp.current_user_playlists.assert_called_once_with(limit=50)
    assert [c.args[0] for c in sp.playlist_items.call_args_list] == ["p1", "p2", "p3"]


def test_empty_library_raises_no_playlists(make_session, spotify_from):
    sp = fake_spotipy({}, page([]), {})

    with pytest.raises(NoPlaylists) as exc_info:
        LibraryWalker(make_session(spotify_from(sp))).walk()
    assert exc_info.value.user_message == "You have no playlists in your Spotify library."


def test_failure_to_list_playlists_aborts(make_session, spotify_from):
    sp = fake_spotipy({}, page([]), {})
    sp.current_user_playlists.side_effect = spotipy.SpotifyException(503, -1, "unavailable")

    with pytest.raises(FetchError) as exc_info:
        LibraryWalker(make_session(spotify_from(sp))).walk()
    assert exc_info.value.status == 503
    assert "503" in exc_info.value.user_message


def test_expired_token_while_reading_tracks_propagates(make_session, spotify_from):
    sp = fake_spotipy({}, page([raw_playlist("p1"), raw_playlist("p2")]),
                      {"p1": spotipy.SpotifyException(401, -1, "expired"), "p2": page([])})

    with pytest.raises(AuthExpired):
        LibraryWalker(make_session(spotify_from(sp))).walk()
    assert sp.playlist_items.call_count == 1


def test_cancel_before_start_makes_no_calls(make_session, spotify_from, token):
    sp = _library()
    token.cancel()

    with pytest.raises(Cancelled):
        LibraryWalker(make_session(spotify_from(sp))).walk()
    sp.current_user_playlists.assert_not_called()


def test_cancel_between_playlists_stops_the_walk(make_session, spotify_from, token):
    sp = _library()

    def cancel_after_first(done, total):
        token.cancel()

    with pytest.raises(Cancelled):
        LibraryWalker(make_session(spotify_from(sp))).walk(on_progress=cancel_after_first)
    assert sp.playlist_items.call_count == 1


def test_rate_limit_while_listing_keeps_its_type(make_session, spotify_from):
    sp = fake_spotipy({}, page([]), {})
    sp.current_user_playlists.side_effect = spotipy.SpotifyException(429, -1, "slow down")

    with pytest.raises(RateLimited) as exc_info:
        LibraryWalker(make_session(spotify_from(sp))).walk()
    assert "try again in a minute" in exc_info.value.user_message
