import json
import requests
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config.settings import config_manager
from core.errors import FetchError, NoData
from utils.logging_config import get_logger

logger = get_logger("gemini_client")

API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

SONG_LIST_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "songs": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "track": {"type": "STRING"},
                    "artist": {"type": "STRING"}
                },
                "required": ["track", "artist"]
            }
        }
    },
    "required": ["songs"]
}


@dataclass(frozen=True)
class SongSuggestion:
    track: str
    artist: str


def build_prompt(theme: str, songs_per_batch: int, batch_number: int, batch_count: int) -> str:
    return (
        f'Based on the following theme: "{theme}", generate a list of {songs_per_batch} suitable songs. '
        f"Include a mix of popular and less common tracks. This is batch {batch_number} of {batch_count}, "
        f"so please provide different songs than previous batches if possible."
    )


class GeminiClient:
    """Asks the Gemini generateContent endpoint for song suggestions as structured JSON"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None):
        config = config_manager.get_gemini_config()
        self.api_key = api_key or config_manager.get_secret('gemini.api_key')
        self.model = model or config.get('model', 'gemini-2.0-flash')
        self.timeout = timeout or config.get('timeout', 60)
        self.session = requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _extract_suggestions(result: Dict[str, Any]) -> List[SongSuggestion]:
        try:
            text = result['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            return []

        try:
            songs = json.loads(text).get('songs') or []
        except (ValueError, AttributeError):
            return []

        suggestions = []
        for song in songs:
            if not isinstance(song, dict):
                continue
            track = str(song.get('track') or '').strip()
            artist = str(song.get('artist') or '').strip()
            if track and artist:
                suggestions.append(SongSuggestion(track=track, artist=artist))
        return suggestions

    def suggest_songs(self, theme: str, songs_per_batch: int = 50, batch_number: int = 1,
                      batch_count: int = 1) -> List[SongSuggestion]:
        """One suggestion batch. An empty or unreadable answer yields an empty list."""
        if not self.is_configured():
            raise NoData("Gemini API key not configured", "AI suggestions are not configured (missing Gemini API key).")

        payload = {
            "contents": [{"role": "user", "parts": [{"text": build_prompt(theme, songs_per_batch, batch_number, batch_count)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": SONG_LIST_SCHEMA
            }
        }

        try:
            response = self.session.post(
                API_URL.format(model=self.model),
                params={'key': self.api_key},
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(f"AI request failed: {status}", status=status,
                             user_message=f"AI request failed ({status}).") from e
        except requests.RequestException as e:
            raise FetchError(f"AI request failed: {e}", user_message="AI request failed, check your connection.") from e
        except ValueError:
            logger.warning(f"AI response for batch {batch_number} was not JSON")
            return []

        suggestions = self._extract_suggestions(result)
        if not suggestions:
            logger.warning(f"AI response for batch {batch_number} was empty or invalid")
        return suggestions
