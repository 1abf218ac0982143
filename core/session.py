from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from core.cancellation import CancellationToken


def _ignore_progress(progress: float, message: str = ""):
    pass


def _ignore_created(playlist_id: str):
    pass


@dataclass(frozen=True)
class Pacing:
    """Fixed delays (seconds) inserted after remote calls to stay under rate limits."""
    page_delay: float = 0.05
    search_delay: float = 0.05
    append_delay: float = 0.05
    artist_batch_delay: float = 0.05
    chunk_size: int = 100
    collection_size_limit: int = 10000

    @classmethod
    def from_config(cls, pipeline_config: Dict[str, Any]) -> 'Pacing':
        defaults = cls()
        return cls(
            page_delay=float(pipeline_config.get('page_delay', defaults.page_delay)),
            search_delay=float(pipeline_config.get('search_delay', defaults.search_delay)),
            append_delay=float(pipeline_config.get('append_delay', defaults.append_delay)),
            artist_batch_delay=float(pipeline_config.get('artist_batch_delay', defaults.artist_batch_delay)),
            chunk_size=int(pipeline_config.get('chunk_size', defaults.chunk_size)),
            collection_size_limit=int(pipeline_config.get('collection_size_limit', defaults.collection_size_limit)),
        )


@dataclass(frozen=True)
class CurationSession:
    """Read-only context handed to every pipeline stage of one task.

    ``client`` is a SpotifyClient bound to the caller's bearer token,
    ``progress`` receives (percent, message) and ``on_created`` receives the id
    of every playlist the moment it exists remotely.
    """
    client: Any
    token: CancellationToken = field(default_factory=CancellationToken)
    pacing: Pacing = field(default_factory=Pacing)
    progress: Callable[..., None] = _ignore_progress
    on_created: Callable[[str], None] = _ignore_created
    gemini: Optional[Any] = None
    proxy: Optional[Any] = None

    def report(self, progress: float, message: str = ""):
        self.progress(progress, message)
