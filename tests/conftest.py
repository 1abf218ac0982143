from typing import Dict, List, Optional

import pytest
from unittest.mock import MagicMock

from core.cancellation import CancellationToken
from core.session import CurationSession, Pacing
from core.spotify_client import CreatedPlaylist, SpotifyClient

NO_DELAY = Pacing(page_delay=0, search_delay=0, append_delay=0, artist_batch_delay=0)


def track_uri(n: int) -> str:
    """Well-formed 22 character base62 track uri"""
    return f"spotify:track:{n:022d}"


def playlist_item(uri: Optional[str], artist_ids: List[str] = ()) -> Dict:
    if uri is None:
        return {"track": None, "is_local": False}
    return {
        "is_local": False,
        "track": {
            "id": uri.rsplit(":", 1)[-1],
            "uri": uri,
            "name": f"Track {uri[-4:]}",
            "artists": [{"id": a, "name": a.title()} for a in artist_ids]
        }
    }


def page(items: List[Dict], next_url: Optional[str] = None, total: Optional[int] = None) -> Dict:
    return {"items": items, "next": next_url, "total": total if total is not None else len(items)}


def raw_playlist(playlist_id: str, name: str = None) -> Dict:
    return {
        "id": playlist_id,
        "name": name or f"Playlist {playlist_id}",
        "owner": {"id": "me", "display_name": "Me"},
        "tracks": {"href": f"https://api.spotify.com/v1/playlists/{playlist_id}/tracks", "total": 0}
    }


def fake_spotipy(pages_by_url: Dict[str, Dict], playlists_first: Dict, items_first: Dict[str, Dict]) -> MagicMock:
    """spotipy.Spotify stand-in that serves canned paginated responses"""
    sp = MagicMock(name="spotipy.Spotify")
    sp.current_user.return_value = {"id": "me", "display_name": "Me"}
    sp.current_user_playlists.return_value = playlists_first

    def playlist_items(playlist_id, limit=100, additional_types=('track',)):
        response = items_first[playlist_id]
        if isinstance(response, Exception):
            raise response
        return response

    def follow(result):
        response = pages_by_url[result["next"]]
        if isinstance(response, Exception):
            raise response
        return response

    sp.playlist_items.side_effect = playlist_items
    sp.next.side_effect = follow
    return sp


class RecordingWriteClient:
    """Catalog client double for the batch writer: records every create/append call"""

    def __init__(self, fail_create_at: Optional[int] = None, fail_append_at: Optional[int] = None, on_append=None):
        self.calls = []
        self.created = []
        self.appends = []
        self.fail_create_at = fail_create_at
        self.fail_append_at = fail_append_at
        self.on_append = on_append

    def create_playlist(self, name, description="", public=False):
        from core.errors import FetchError
        self.calls.append(("create", name))
        if self.fail_create_at is not None and len(self.created) + 1 == self.fail_create_at:
            raise FetchError("create failed", status=500)
        playlist = CreatedPlaylist(id=f"pl{len(self.created) + 1}", name=name)
        self.created.append(playlist)
        return playlist

    def add_tracks_to_playlist(self, playlist_id, uris):
        from core.errors import FetchError
        self.calls.append(("append", playlist_id, len(uris)))
        if self.fail_append_at is not None and len(self.appends) + 1 == self.fail_append_at:
            raise FetchError("append failed", status=502)
        self.appends.append((playlist_id, list(uris)))
        if self.on_append:
            self.on_append(len(self.appends))


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def make_session(token):
    def _make(client, **kwargs):
        kwargs.setdefault("pacing", NO_DELAY)
        return CurationSession(client=client, token=token, **kwargs)
    return _make


@pytest.fixture
def spotify_from():
    def _wrap(sp):
        return SpotifyClient(sp=sp)
    return _wrap
