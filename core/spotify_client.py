import spotipy
import requests
from spotipy.oauth2 import SpotifyPKCE, SpotifyOauthError
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
from functools import wraps
from dataclasses import dataclass, field
from utils.logging_config import get_logger
from config.settings import config_manager
from core.errors import AuthExpired, FetchError, RateLimited, UnexpectedShape

logger = get_logger("spotify_client")

# Remote ceilings enforced by the Web API
MAX_ITEMS_PER_ADD_REQUEST = 100
MAX_PLAYLIST_SIZE = 10000
MAX_ARTISTS_PER_REQUEST = 50
MAX_RECOMMENDATION_SEEDS = 5

T = TypeVar("T")


def spotify_call(operation: str):
    """Decorator translating spotipy/requests failures into the curator error taxonomy"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except spotipy.SpotifyException as e:
                if e.http_status == 401:
                    logger.warning(f"Spotify rejected the token during {operation}")
                    raise AuthExpired(f"401 during {operation}") from e
                if e.http_status == 429:
                    raise RateLimited(f"Rate limited during {operation}", status=429,
                                      user_message="Spotify is rate limiting requests, try again in a minute.") from e
                raise FetchError(f"Spotify error during {operation}: {e.http_status} {e.msg}",
                                 status=e.http_status) from e
            except SpotifyOauthError as e:
                raise AuthExpired(f"OAuth failure during {operation}: {e}") from e
            except requests.RequestException as e:
                raise FetchError(f"Network error during {operation}: {e}") from e
        return wrapper
    return decorator


def _require(data: Any, key: str, expected_type, context: str):
    if not isinstance(data, dict) or key not in data or not isinstance(data[key], expected_type):
        raise UnexpectedShape(f"{context}: missing or invalid '{key}'",
                              "Spotify returned a response this app does not understand.")
    return data[key]


@dataclass
class Page(Generic[T]):
    items: List[T]
    next: Optional[str]
    total: Optional[int] = None
    parse_item: Optional[Callable[[Dict[str, Any]], T]] = field(default=None, repr=False, compare=False)


@dataclass
class Track:
    id: Optional[str]
    uri: str
    name: str
    artist_ids: List[str]

    @classmethod
    def from_spotify_track(cls, track_data: Dict[str, Any]) -> 'Track':
        uri = _require(track_data, 'uri', str, "track")
        artists = track_data.get('artists') or []
        return cls(
            id=track_data.get('id'),
            uri=uri,
            name=track_data.get('name') or '',
            artist_ids=[a['id'] for a in artists if isinstance(a, dict) and isinstance(a.get('id'), str)]
        )


@dataclass
class PlaylistSummary:
    id: str
    name: str
    owner_id: Optional[str]
    total_tracks: int

    @classmethod
    def from_spotify_playlist(cls, playlist_data: Dict[str, Any]) -> 'PlaylistSummary':
        tracks = playlist_data.get('tracks') if isinstance(playlist_data, dict) else None
        owner = playlist_data.get('owner') if isinstance(playlist_data, dict) else None
        return cls(
            id=_require(playlist_data, 'id', str, "playlist"),
            name=playlist_data.get('name') or '',
            owner_id=owner.get('id') if isinstance(owner, dict) else None,
            total_tracks=tracks.get('total', 0) if isinstance(tracks, dict) else 0
        )


@dataclass
class PlaylistTrackItem:
    """One row of a playlist. ``uri`` is None for removed/unavailable tracks."""
    uri: Optional[str]
    artist_ids: List[str]
    is_local: bool = False

    @classmethod
    def from_spotify_item(cls, item_data: Any) -> 'PlaylistTrackItem':
        if not isinstance(item_data, dict):
            return cls(uri=None, artist_ids=[])
        track = item_data.get('track')
        if not isinstance(track, dict):
            return cls(uri=None, artist_ids=[], is_local=bool(item_data.get('is_local')))
        uri = track.get('uri') if isinstance(track.get('uri'), str) else None
        artists = track.get('artists') if isinstance(track.get('artists'), list) else []
        return cls(
            uri=uri,
            artist_ids=[a['id'] for a in artists if isinstance(a, dict) and isinstance(a.get('id'), str)],
            is_local=bool(item_data.get('is_local') or track.get('is_local'))
        )


@dataclass
class CreatedPlaylist:
    id: str
    name: str
    url: Optional[str] = None

    @classmethod
    def from_spotify_playlist(cls, playlist_data: Dict[str, Any]) -> 'CreatedPlaylist':
        urls = playlist_data.get('external_urls') if isinstance(playlist_data, dict) else None
        return cls(
            id=_require(playlist_data, 'id', str, "created playlist"),
            name=playlist_data.get('name') or '',
            url=urls.get('spotify') if isinstance(urls, dict) else None
        )


@dataclass
class Artist:
    id: str
    name: str
    genres: List[str]

    @classmethod
    def from_spotify_artist(cls, artist_data: Dict[str, Any]) -> 'Artist':
        genres = artist_data.get('genres') if isinstance(artist_data.get('genres'), list) else []
        return cls(
            id=_require(artist_data, 'id', str, "artist"),
            name=artist_data.get('name') or '',
            genres=[g for g in genres if isinstance(g, str)]
        )


class SpotifyClient:
    """Thin wrapper over spotipy returning validated result structs.

    spotipy's transparent retries are disabled: a failed call surfaces
    immediately and the pipeline decides what to do with it.
    """

    def __init__(self, access_token: Optional[str] = None, auth_manager=None, sp: Optional[spotipy.Spotify] = None,
                 requests_timeout: int = 10):
        self.user_id: Optional[str] = None
        if sp is not None:
            self.sp = sp
        elif access_token or auth_manager:
            self.sp = spotipy.Spotify(
                auth=access_token,
                auth_manager=auth_manager,
                requests_timeout=requests_timeout,
                retries=0,
                status_retries=0,
                backoff_factor=0
            )
        else:
            self.sp = None

    @classmethod
    def from_config(cls) -> 'SpotifyClient':
        config = config_manager.get_spotify_config()
        timeout = int(config.get('requests_timeout', 10))

        if config.get('access_token'):
            logger.info("Spotify client initialized from configured access token")
            return cls(access_token=config['access_token'], requests_timeout=timeout)

        if not config.get('client_id'):
            logger.warning("Spotify credentials not configured")
            return cls()

        auth_manager = SpotifyPKCE(
            client_id=config['client_id'],
            redirect_uri=config.get('redirect_uri'),
            scope=config.get('scope'),
            cache_path=config.get('cache_path', '.spotify_cache'),
            open_browser=False
        )
        logger.info("Spotify client initialized with PKCE auth manager")
        return cls(auth_manager=auth_manager, requests_timeout=timeout)

    def is_authenticated(self) -> bool:
        """Fast check, no API calls"""
        return self.sp is not None

    def _ensure_sp(self):
        if self.sp is None:
            raise AuthExpired("No Spotify credentials available")

    def _parse_page(self, data: Any, parse_item: Callable[[Any], T], context: str) -> Page[T]:
        items = _require(data, 'items', list, context)
        next_url = data.get('next')
        if next_url is not None and not isinstance(next_url, str):
            raise UnexpectedShape(f"{context}: invalid 'next' cursor")
        return Page(
            items=[parse_item(item) for item in items],
            next=next_url,
            total=data.get('total') if isinstance(data.get('total'), int) else None,
            parse_item=parse_item
        )

    @spotify_call("fetching user profile")
    def current_user_id(self) -> str:
        self._ensure_sp()
        if self.user_id is None:
            user_info = self.sp.current_user()
            self.user_id = _require(user_info, 'id', str, "current user")
            logger.info(f"Authenticated with Spotify as {user_info.get('display_name') or self.user_id}")
        return self.user_id

    @spotify_call("listing playlists")
    def get_my_playlists_page(self, limit: int = 50) -> Page[PlaylistSummary]:
        self._ensure_sp()
        results = self.sp.current_user_playlists(limit=limit)
        return self._parse_page(results, PlaylistSummary.from_spotify_playlist, "playlists page")

    @spotify_call("listing playlist tracks")
    def get_playlist_items_page(self, playlist_id: str, limit: int = 100) -> Page[PlaylistTrackItem]:
        self._ensure_sp()
        results = self.sp.playlist_items(playlist_id, limit=limit, additional_types=('track',))
        return self._parse_page(results, PlaylistTrackItem.from_spotify_item, "playlist items page")

    @spotify_call("following a page cursor")
    def next_page(self, page: Page[T]) -> Optional[Page[T]]:
        if not page.next:
            return None
        self._ensure_sp()
        results = self.sp.next({'next': page.next})
        return self._parse_page(results, page.parse_item, "next page")

    @spotify_call("searching tracks")
    def search_tracks(self, query: str, limit: int = 1) -> List[Track]:
        self._ensure_sp()
        results = self.sp.search(q=query, type='track', limit=limit)
        tracks_block = _require(results, 'tracks', dict, "search response")
        items = _require(tracks_block, 'items', list, "search response")
        return [Track.from_spotify_track(item) for item in items if isinstance(item, dict)]

    @spotify_call("creating playlist")
    def create_playlist(self, name: str, description: str = "", public: bool = False) -> CreatedPlaylist:
        user_id = self.current_user_id()
        playlist_data = self.sp.user_playlist_create(user_id, name, public=public, description=description)
        playlist = CreatedPlaylist.from_spotify_playlist(playlist_data)
        logger.info(f"Created playlist '{playlist.name}' ({playlist.id})")
        return playlist

    @spotify_call("adding tracks to playlist")
    def add_tracks_to_playlist(self, playlist_id: str, track_uris: List[str]):
        if len(track_uris) > MAX_ITEMS_PER_ADD_REQUEST:
            raise ValueError(f"At most {MAX_ITEMS_PER_ADD_REQUEST} tracks per request, got {len(track_uris)}")
        self._ensure_sp()
        self.sp.playlist_add_items(playlist_id, track_uris)

    @spotify_call("fetching top tracks")
    def get_top_tracks(self, limit: int = 50, offset: int = 0, time_range: str = 'long_term') -> Page[Track]:
        self._ensure_sp()
        results = self.sp.current_user_top_tracks(limit=limit, offset=offset, time_range=time_range)
        return self._parse_page(results, Track.from_spotify_track, "top tracks page")

    @spotify_call("fetching top artists")
    def get_top_artists(self, limit: int = 5, time_range: str = 'short_term') -> List[Artist]:
        self._ensure_sp()
        results = self.sp.current_user_top_artists(limit=limit, time_range=time_range)
        return self._parse_page(results, Artist.from_spotify_artist, "top artists page").items

    @spotify_call("fetching artists")
    def get_artists(self, artist_ids: List[str]) -> List[Artist]:
        if len(artist_ids) > MAX_ARTISTS_PER_REQUEST:
            raise ValueError(f"At most {MAX_ARTISTS_PER_REQUEST} artists per request, got {len(artist_ids)}")
        self._ensure_sp()
        results = self.sp.artists(artist_ids)
        artists = _require(results, 'artists', list, "artists response")
        # Unknown ids come back as null entries
        return [Artist.from_spotify_artist(a) for a in artists if isinstance(a, dict)]

    @spotify_call("fetching recommendations")
    def get_recommendations(self, seed_genres: Optional[List[str]] = None, seed_artists: Optional[List[str]] = None,
                            seed_tracks: Optional[List[str]] = None, limit: int = 50) -> List[Track]:
        self._ensure_sp()
        results = self.sp.recommendations(
            seed_artists=seed_artists or None,
            seed_genres=seed_genres or None,
            seed_tracks=seed_tracks or None,
            limit=limit
        )
        tracks = _require(results, 'tracks', list, "recommendations response")
        return [Track.from_spotify_track(t) for t in tracks if isinstance(t, dict)]
