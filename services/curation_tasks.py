"""Playlist-creator tasks run by the task controller.

Each task takes a CurationSession and keyword parameters and returns a
TaskResult. Progress weights per task kind:

  wqxr_daily    proxy fetch 0-5, matching 5-90, writing 90-100
  ai_playlist   suggestion batches + matching 0-90, writing 90-100
  top_tracks    two top-track pages 0-50, writing 50-100
  all_songs     library walk 0-15, writing 15-100
  genre_scan    library walk 0-40, artist genre lookups 40-100
  genre_fusion  seeds + recommendations 0-60, writing 60-100
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.batch_writer import BatchJob, BatchWriter
from core.errors import FetchError, NoData, UnexpectedShape
from core.library_walker import LibraryWalker
from core.matching_engine import MatchEngine, dedupe_queries
from core.session import CurationSession
from core.spotify_client import MAX_ARTISTS_PER_REQUEST, MAX_RECOMMENDATION_SEEDS
from core.wqxr_scraper import MONTH_ABBREVIATIONS, normalize_date_parts
from utils.logging_config import get_logger

logger = get_logger("curation_tasks")

TOP_TRACKS_PAGE_SIZE = 50
TOP_TRACKS_PAGES = 2
SEED_SOURCE_LIMIT = 5
RECOMMENDATIONS_LIMIT = 50
MAX_FUSION_GENRES = 3


@dataclass
class TaskResult:
    message: str
    playlist_ids: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "playlist_ids": list(self.playlist_ids), "data": dict(self.data)}


def yesterday_date_parts(today: Optional[date] = None) -> Tuple[str, str, str]:
    """(year, lowercase short month, two-digit day) for the day before ``today``"""
    yesterday = (today or date.today()) - timedelta(days=1)
    return str(yesterday.year), MONTH_ABBREVIATIONS[yesterday.month - 1], f"{yesterday.day:02d}"


def stage_progress(session: CurationSession, start: float, end: float, message: str = "") -> Callable[[int, int], None]:
    """Map (done, total) of one stage onto the [start, end] slice of the task's progress"""
    def report(done: int, total: int):
        fraction = (done / total) if total else 1.0
        session.report(start + (end - start) * fraction, message)
    return report


def _today() -> str:
    return datetime.now().strftime('%Y-%m-%d')


def _unique(uris: List[str]) -> List[str]:
    return list(dict.fromkeys(uris))


def _write(session: CurationSession, name: str, description: str, uris: List[str],
           start: float, end: float) -> List[str]:
    job = BatchJob(
        name=name,
        description=description,
        items=uris,
        chunk_size=session.pacing.chunk_size,
        collection_size_limit=session.pacing.collection_size_limit
    )
    session.report(start, f"Adding {len(uris)} songs to \"{name}\"...")
    return BatchWriter(session).create_and_populate(job, on_progress=stage_progress(session, start, end, "Adding tracks..."))


# --- WQXR daily ---

def validate_wqxr_params(year=None, month=None, day=None, **_):
    """All three date parts, or none of them for yesterday"""
    given = [part for part in (year, month, day) if part not in (None, "")]
    if not given:
        return
    if len(given) < 3:
        raise ValueError("Please give the full date (year, month and day), or none of it for yesterday.")
    normalize_date_parts(year, month, day)


def create_wqxr_playlist(session: CurationSession, year=None, month=None, day=None) -> TaskResult:
    validate_wqxr_params(year=year, month=month, day=day)
    if year in (None, ""):
        year, month, day = yesterday_date_parts()
    else:
        year, month, day = normalize_date_parts(year, month, day)

    session.report(0, "Requesting playlist from proxy server...")
    session.token.check()
    scraped = session.proxy.fetch_tracks(year, month, day)
    if not scraped:
        raise NoData(f"No tracks scraped for {year}-{month}-{day}", "Could not parse any tracks from the WQXR playlist.")

    session.report(5, f"Found {len(scraped)} tracks from WQXR. Searching on Spotify...")
    results = MatchEngine(session).match_all(
        [(track.title, track.performer) for track in scraped],
        on_progress=stage_progress(session, 5, 90, "Searching on Spotify...")
    )

    uris = _unique([r.track_uri for r in results if r.is_match])
    if not uris:
        raise NoData("No WQXR track matched", "Could not find any of the WQXR tracks on Spotify.")

    playlist_ids = _write(
        session,
        name=f"WQXR Daily - {year}-{month}-{day}",
        description=f"A playlist of songs from WQXR on {year}-{month}-{day}.",
        uris=uris, start=90, end=100
    )
    return TaskResult(
        message="WQXR playlist created successfully!",
        playlist_ids=playlist_ids,
        data={"scraped": len(scraped), "matched": len(uris)}
    )


# --- AI suggestions ---

def validate_ai_params(name: str = "", prompt: str = "", **_):
    if not (name or "").strip():
        raise ValueError("Playlist name cannot be empty.")
    if not (prompt or "").strip():
        raise ValueError("Please describe the kind of playlist you want.")


def create_ai_playlist(session: CurationSession, name: str, prompt: str,
                       total_songs: int = 200, songs_per_batch: int = 50) -> TaskResult:
    validate_ai_params(name=name, prompt=prompt)
    batch_count = max(1, -(-total_songs // songs_per_batch))
    slice_size = 90 / batch_count

    seen_queries = []
    uris: List[str] = []
    engine = MatchEngine(session)

    for batch_index in range(batch_count):
        batch_number = batch_index + 1
        batch_start = batch_index * slice_size
        session.report(batch_start, f"Asking AI for song ideas (Batch {batch_number}/{batch_count})...")
        session.token.check()

        suggestions = session.gemini.suggest_songs(prompt, songs_per_batch, batch_number, batch_count)
        if not suggestions:
            logger.warning(f"AI did not suggest any songs for batch {batch_number}")
            continue

        queries = dedupe_queries(seen_queries + [(s.track, s.artist) for s in suggestions])[len(seen_queries):]
        seen_queries.extend(queries)

        session.report(batch_start, f"Searching for suggested songs on Spotify (Batch {batch_number}/{batch_count})...")
        results = engine.match_all(
            queries,
            on_progress=stage_progress(session, batch_start, batch_start + slice_size, "Searching on Spotify...")
        )
        uris.extend(r.track_uri for r in results if r.is_match)

    uris = _unique(uris)
    if not uris:
        raise NoData("No AI suggestion matched", "Could not find any of the AI-suggested songs on Spotify.")

    playlist_ids = _write(
        session,
        name=name.strip(),
        description=f"AI-generated playlist based on the prompt: \"{prompt.strip()}\"",
        uris=uris, start=90, end=100
    )
    return TaskResult(
        message="AI-powered playlist created successfully!",
        playlist_ids=playlist_ids,
        data={"suggested": len(seen_queries), "matched": len(uris)}
    )


# --- Top tracks ---

def create_top_tracks_playlist(session: CurationSession) -> TaskResult:
    uris: List[str] = []
    for page_index in range(TOP_TRACKS_PAGES):
        page_number = page_index + 1
        session.report(page_index * 25, f"Fetching your top 100 tracks (Page {page_number}/{TOP_TRACKS_PAGES})...")
        session.token.check()
        try:
            page = session.client.get_top_tracks(
                limit=TOP_TRACKS_PAGE_SIZE, offset=page_index * TOP_TRACKS_PAGE_SIZE, time_range='long_term'
            )
        except FetchError as e:
            raise FetchError(str(e), status=e.status,
                             user_message=f"Failed to fetch top tracks page (offset {page_index * TOP_TRACKS_PAGE_SIZE}).") from e
        uris.extend(track.uri for track in page.items)
        session.token.sleep(session.pacing.page_delay)

    uris = _unique(uris)
    if not uris:
        raise NoData("No top tracks", "Could not find any top tracks. Listen to more music on Spotify!")

    session.report(50, f"Found {len(uris)} top tracks. Creating playlist...")
    playlist_ids = _write(
        session,
        name=f"My Top 100 Tracks - {_today()}",
        description="A playlist generated from your top 100 Spotify tracks.",
        uris=uris, start=50, end=100
    )
    return TaskResult(message="Top 100 tracks playlist created successfully!", playlist_ids=playlist_ids,
                      data={"tracks": len(uris)})


# --- All songs across the library ---

def create_all_songs_playlist(session: CurationSession) -> TaskResult:
    session.report(0, "Fetching all your playlists...")
    scan = LibraryWalker(session).walk(on_progress=stage_progress(session, 0, 15, "Scanning your playlists..."))

    if not scan.track_uris:
        raise NoData("Library walk found no tracks", "Could not find any unique songs across your playlists.")

    # Sets are unordered; sort so repeated runs write the same parts
    uris = sorted(scan.track_uris)
    playlist_ids = _write(
        session,
        name=f"All My Playlists Songs - {_today()}",
        description="All unique songs from your Spotify playlists.",
        uris=uris, start=15, end=100
    )
    return TaskResult(
        message=f"Successfully created {len(playlist_ids)} playlist(s)!",
        playlist_ids=playlist_ids,
        data={
            "tracks": len(uris),
            "playlists_scanned": scan.playlist_count,
            "skipped_items": scan.skipped_items,
            "unreadable_playlists": len(scan.failed_playlists)
        }
    )


# --- Genres ---

def scan_library_genres(session: CurationSession) -> TaskResult:
    session.report(0, "Scanning your library for genres...")
    scan = LibraryWalker(session).walk(on_progress=stage_progress(session, 0, 40, "Scanning your playlists..."))

    artist_ids = sorted(scan.artist_ids)
    if not artist_ids:
        raise NoData("No artists in library", "Could not find any artists in your playlists to determine genres.")

    session.report(40, f"Found {len(artist_ids)} unique artists. Fetching their genres...")
    report = stage_progress(session, 40, 100, "Fetching artist genres...")
    genres = set()
    for start in range(0, len(artist_ids), MAX_ARTISTS_PER_REQUEST):
        batch = artist_ids[start:start + MAX_ARTISTS_PER_REQUEST]
        session.token.check()
        try:
            artists = session.client.get_artists(batch)
        except (FetchError, UnexpectedShape) as e:
            logger.warning(f"Failed to fetch artist batch at offset {start}: {e}")
            artists = []

        for artist in artists:
            genres.update(artist.genres)
        report(start + len(batch), len(artist_ids))
        session.token.sleep(session.pacing.artist_batch_delay)

    sorted_genres = sorted(genres)
    return TaskResult(
        message=f"Found {len(sorted_genres)} unique genres. Select 1 to 3 genres to create a fusion playlist.",
        data={"genres": sorted_genres, "artists": len(artist_ids)}
    )


def build_seeds(genres: List[str], artist_ids: List[str], track_ids: List[str],
                total: int = MAX_RECOMMENDATION_SEEDS) -> Dict[str, List[str]]:
    """Fill the seed budget with genres first, then artists, then tracks"""
    seed_genres = list(genres[:total])
    seed_artists = list(artist_ids[:total - len(seed_genres)])
    seed_tracks = list(track_ids[:total - len(seed_genres) - len(seed_artists)])
    return {"seed_genres": seed_genres, "seed_artists": seed_artists, "seed_tracks": seed_tracks}


def validate_fusion_params(name: str = "", genres: Optional[List[str]] = None, **_):
    if not isinstance(genres, list) or not all(isinstance(g, str) and g.strip() for g in genres):
        raise ValueError("Please select between 1 and 3 genres.")
    if len(genres) < 1 or len(genres) > MAX_FUSION_GENRES:
        raise ValueError("Please select between 1 and 3 genres.")
    if not (name or "").strip():
        raise ValueError("Please enter a name for your fusion playlist.")


def create_genre_fusion_playlist(session: CurationSession, name: str, genres: List[str]) -> TaskResult:
    validate_fusion_params(name=name, genres=genres)

    session.report(0, "Finding seed artists and tracks from your library...")
    session.token.check()
    try:
        top_artists = session.client.get_top_artists(limit=SEED_SOURCE_LIMIT, time_range='short_term')
        session.token.sleep(session.pacing.page_delay)
        top_tracks = session.client.get_top_tracks(limit=SEED_SOURCE_LIMIT, time_range='short_term').items
    except (FetchError, UnexpectedShape) as e:
        raise FetchError(str(e), user_message="Could not fetch seed data from your library.") from e

    seeds = build_seeds(genres, [a.id for a in top_artists], [t.id for t in top_tracks if t.id])
    session.report(30, "Getting recommendations from Spotify...")
    session.token.check()
    try:
        recommendations = session.client.get_recommendations(limit=RECOMMENDATIONS_LIMIT, **seeds)
    except FetchError as e:
        raise FetchError(str(e), status=e.status,
                         user_message=f"Failed to get recommendations ({e.status or 'network error'}).") from e

    uris = _unique([track.uri for track in recommendations])
    if not uris:
        raise NoData("No recommendations", "Couldn't find any tracks for that genre combination. Try a different fusion!")

    session.report(60, f"Creating playlist \"{name.strip()}\"...")
    playlist_ids = _write(
        session,
        name=name.strip(),
        description=f"A fusion of {', '.join(genres)}.",
        uris=uris, start=60, end=100
    )
    return TaskResult(message="Genre Fusion playlist created successfully!", playlist_ids=playlist_ids,
                      data={"tracks": len(uris), "seeds": seeds})


@dataclass(frozen=True)
class TaskKind:
    name: str
    label: str
    runner: Callable[..., TaskResult]
    validate: Optional[Callable[..., None]] = None
    needs_proxy: bool = False
    needs_ai: bool = False


TASK_KINDS: Dict[str, TaskKind] = {
    kind.name: kind for kind in (
        TaskKind("wqxr_daily", "WQXR playlist creation", create_wqxr_playlist, validate_wqxr_params, needs_proxy=True),
        TaskKind("ai_playlist", "AI playlist creation", create_ai_playlist, validate_ai_params, needs_ai=True),
        TaskKind("top_tracks", "Top tracks playlist creation", create_top_tracks_playlist),
        TaskKind("all_songs", "All songs playlist creation", create_all_songs_playlist),
        TaskKind("genre_scan", "Genre scan", scan_library_genres),
        TaskKind("genre_fusion", "Genre fusion playlist creation", create_genre_fusion_playlist, validate_fusion_params),
    )
}
