from typing import Callable, Iterable, List, Optional, Tuple
import re
from dataclasses import dataclass
from unidecode import unidecode
from utils.logging_config import get_logger
from core.errors import FetchError, UnexpectedShape
from core.session import CurationSession

logger = get_logger("matching_engine")


@dataclass(frozen=True)
class MatchResult:
    query: Tuple[str, str]
    track_uri: Optional[str]

    @property
    def is_match(self) -> bool:
        return self.track_uri is not None


def build_query(title: str, performer: str) -> str:
    """Field-scoped search string understood by the catalog search endpoint."""
    return f"track:{title.strip()} artist:{performer.strip()}"


def normalize_string(text: str) -> str:
    """
    Normalizes a string by converting to ASCII, lowercasing, and replacing
    separators with spaces. Used to spot duplicate suggestions, never to
    rewrite a search query.
    """
    if not text:
        return ""
    text = unidecode(text)
    text = text.lower()

    # Replace common separators with spaces to preserve word boundaries.
    text = re.sub(r'[._/]', ' ', text)

    # Keep alphanumeric characters, spaces, hyphens, and the '$' sign.
    text = re.sub(r'[^a-z0-9\s$-]', '', text)

    return re.sub(r'\s+', ' ', text).strip()


def suggestion_key(title: str, performer: str) -> Tuple[str, str]:
    return normalize_string(title), normalize_string(performer)


def dedupe_queries(queries: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Drop repeated (title, performer) pairs, keeping first occurrence order."""
    seen = set()
    unique = []
    for title, performer in queries:
        key = suggestion_key(title, performer)
        if key in seen:
            continue
        seen.add(key)
        unique.append((title, performer))
    return unique


class MatchEngine:
    """Resolves free-text (title, performer) pairs to catalog track uris.

    One search per query, the first candidate wins, no retries and no
    alternate spellings. Queries run strictly one after another with a fixed
    delay between dispatches.
    """

    def __init__(self, session: CurationSession):
        self.session = session
        self.client = session.client
        self.token = session.token
        self.search_delay = session.pacing.search_delay

    def match(self, title: str, performer: str) -> MatchResult:
        self.token.check()
        query = build_query(title, performer)
        try:
            candidates = self.client.search_tracks(query, limit=1)
        except (FetchError, UnexpectedShape) as e:
            logger.warning(f"Search failed for '{query}': {e}")
            return MatchResult(query=(title, performer), track_uri=None)

        if not candidates:
            logger.debug(f"No match for '{query}'")
            return MatchResult(query=(title, performer), track_uri=None)

        return MatchResult(query=(title, performer), track_uri=candidates[0].uri)

    def match_all(self, queries: List[Tuple[str, str]],
                  on_progress: Optional[Callable[[int, int], None]] = None) -> List[MatchResult]:
        results = []
        total = len(queries)
        for index, (title, performer) in enumerate(queries):
            results.append(self.match(title, performer))
            if on_progress:
                on_progress(index + 1, total)
            self.token.sleep(self.search_delay)

        matched = sum(1 for r in results if r.is_match)
        logger.info(f"Matched {matched}/{total} queries")
        return results
