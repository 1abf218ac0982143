import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from core.errors import CreateFailed, FetchError, NoData, PartialFailure, UnexpectedShape
from core.session import CurationSession
from core.spotify_client import MAX_ITEMS_PER_ADD_REQUEST, MAX_PLAYLIST_SIZE
from utils.logging_config import get_logger

logger = get_logger("batch_writer")


@dataclass
class BatchJob:
    name: str
    description: str
    items: List[str]
    chunk_size: int = MAX_ITEMS_PER_ADD_REQUEST
    collection_size_limit: int = MAX_PLAYLIST_SIZE
    public: bool = False

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if self.chunk_size > MAX_ITEMS_PER_ADD_REQUEST:
            raise ValueError(f"chunk_size cannot exceed {MAX_ITEMS_PER_ADD_REQUEST}")
        if self.collection_size_limit > MAX_PLAYLIST_SIZE:
            raise ValueError(f"collection_size_limit cannot exceed {MAX_PLAYLIST_SIZE}")
        if self.chunk_size > self.collection_size_limit:
            raise ValueError("chunk_size cannot exceed collection_size_limit")

    @property
    def part_count(self) -> int:
        return math.ceil(len(self.items) / self.collection_size_limit)

    def parts(self) -> List[List[str]]:
        limit = self.collection_size_limit
        return [self.items[start:start + limit] for start in range(0, len(self.items), limit)]


@dataclass
class _WriteState:
    total: int
    written: int = 0
    created_ids: List[str] = field(default_factory=list)


class BatchWriter:
    """Creates playlists and fills them in ordered, size-limited chunks.

    Nothing is rolled back: playlists created before a failure or a
    cancellation stay in the user's library and are reported to the caller.
    """

    def __init__(self, session: CurationSession):
        self.session = session
        self.client = session.client
        self.token = session.token
        self.append_delay = session.pacing.append_delay

    @staticmethod
    def part_name(job: BatchJob, part_number: int) -> str:
        if job.part_count <= 1:
            return job.name
        return f"{job.name} - Part {part_number}"

    @staticmethod
    def part_description(job: BatchJob, part_number: int) -> str:
        if job.part_count <= 1:
            return job.description
        return f"Part {part_number} of {job.part_count}. {job.description}".strip()

    def create_and_populate(self, job: BatchJob,
                            on_progress: Optional[Callable[[int, int], None]] = None) -> List[str]:
        if not job.items:
            raise NoData(f"Nothing to write for '{job.name}'", "No tracks were found to add to the playlist.")

        state = _WriteState(total=len(job.items))
        parts = job.parts()
        logger.info(f"Writing {state.total} tracks into {len(parts)} playlist(s) named '{job.name}'")

        for part_number, part_items in enumerate(parts, start=1):
            playlist_id = self._create_part(job, part_number, state)
            self._append_chunks(job, playlist_id, part_items, state, on_progress)

        logger.info(f"Finished writing {state.written} tracks into {len(state.created_ids)} playlist(s)")
        return list(state.created_ids)

    def _create_part(self, job: BatchJob, part_number: int, state: _WriteState) -> str:
        name = self.part_name(job, part_number)
        self.token.check()
        try:
            playlist = self.client.create_playlist(name, self.part_description(job, part_number), public=job.public)
        except (FetchError, UnexpectedShape) as e:
            logger.error(f"Failed to create playlist '{name}': {e}")
            raise CreateFailed(
                f"Failed to create playlist '{name}': {e}",
                created_ids=state.created_ids,
                user_message=f"Failed to create playlist \"{name}\"."
            ) from e

        state.created_ids.append(playlist.id)
        self.session.on_created(playlist.id)
        return playlist.id

    def _append_chunks(self, job: BatchJob, playlist_id: str, part_items: List[str], state: _WriteState,
                       on_progress: Optional[Callable[[int, int], None]]):
        for start in range(0, len(part_items), job.chunk_size):
            chunk = part_items[start:start + job.chunk_size]
            self.token.check()
            try:
                self.client.add_tracks_to_playlist(playlist_id, chunk)
            except FetchError as e:
                logger.error(f"Failed to add {len(chunk)} tracks to playlist {playlist_id}: {e}")
                raise PartialFailure(
                    f"Append to {playlist_id} failed after {state.written} tracks: {e}",
                    created_ids=state.created_ids,
                    user_message=f"Failed to add tracks to playlist after {state.written} of {state.total} were added."
                ) from e

            state.written += len(chunk)
            if on_progress:
                on_progress(state.written, state.total)
            self.token.sleep(self.append_delay)
