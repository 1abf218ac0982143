import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from core.errors import FetchError, NoPlaylists, RateLimited, UnexpectedShape
from core.session import CurationSession
from core.spotify_client import PlaylistSummary
from utils.logging_config import get_logger

logger = get_logger("library_walker")

PLAYLISTS_PAGE_SIZE = 50
TRACKS_PAGE_SIZE = 100

TRACK_URI_PATTERN = re.compile(r"^spotify:track:[A-Za-z0-9]{22}$")


def is_valid_track_uri(uri) -> bool:
    return isinstance(uri, str) and TRACK_URI_PATTERN.match(uri) is not None


@dataclass
class LibraryItem:
    track_uri: str
    artist_ids: Set[str]


@dataclass
class LibraryScan:
    track_uris: Set[str] = field(default_factory=set)
    artist_ids: Set[str] = field(default_factory=set)
    playlist_count: int = 0
    skipped_items: int = 0
    failed_playlists: List[str] = field(default_factory=list)

    def add(self, item: LibraryItem):
        self.track_uris.add(item.track_uri)
        self.artist_ids.update(item.artist_ids)


class LibraryWalker:
    """Enumerates every playlist in the user's library and collects unique track uris and artist ids.

    Playlists are walked in listing order. A playlist whose tracks cannot be
    read is logged and skipped; failing to list playlists at all aborts.
    """

    def __init__(self, session: CurationSession):
        self.session = session
        self.client = session.client
        self.token = session.token
        self.page_delay = session.pacing.page_delay

    def _pause(self):
        self.token.sleep(self.page_delay)

    def list_playlists(self) -> List[PlaylistSummary]:
        playlists = []

        try:
            self.token.check()
            page = self.client.get_my_playlists_page(limit=PLAYLISTS_PAGE_SIZE)
            while page is not None:
                playlists.extend(page.items)
                self._pause()
                if not page.next:
                    break
                self.token.check()
                page = self.client.next_page(page)
        except FetchError as e:
            logger.error(f"Failed to list playlists: {e}")
            if isinstance(e, RateLimited):
                raise
            raise FetchError(str(e), status=e.status, user_message=f"Failed to fetch your playlists ({e.status or 'network error'}).") from e

        logger.info(f"Found {len(playlists)} playlists in library")
        return playlists

    def _collect_playlist(self, playlist: PlaylistSummary, scan: LibraryScan):
        self.token.check()
        try:
            page = self.client.get_playlist_items_page(playlist.id, limit=TRACKS_PAGE_SIZE)
        except (FetchError, UnexpectedShape) as e:
            logger.warning(f"Failed to fetch tracks for playlist '{playlist.name}' ({playlist.id}): {e}")
            scan.failed_playlists.append(playlist.id)
            return

        while page is not None:
            for item in page.items:
                if is_valid_track_uri(item.uri):
                    scan.add(LibraryItem(track_uri=item.uri, artist_ids=set(item.artist_ids)))
                else:
                    scan.skipped_items += 1
                    logger.warning(f"Skipping invalid track uri from playlist '{playlist.name}': {item.uri!r}")

            self._pause()
            if not page.next:
                break

            self.token.check()
            try:
                page = self.client.next_page(page)
            except (FetchError, UnexpectedShape) as e:
                logger.warning(f"Failed to fetch next track page for playlist '{playlist.name}' ({playlist.id}): {e}")
                scan.failed_playlists.append(playlist.id)
                return

    def walk(self, on_progress: Optional[Callable[[int, int], None]] = None) -> LibraryScan:
        playlists = self.list_playlists()
        if not playlists:
            raise NoPlaylists()

        scan = LibraryScan(playlist_count=len(playlists))
        for index, playlist in enumerate(playlists):
            self._collect_playlist(playlist, scan)
            if on_progress:
                on_progress(index + 1, len(playlists))

        logger.info(f"Library walk complete: {len(scan.track_uris)} unique tracks, "
                    f"{len(scan.artist_ids)} unique artists, {scan.skipped_items} skipped items, "
                    f"{len(scan.failed_playlists)} unreadable playlists")
        return scan
