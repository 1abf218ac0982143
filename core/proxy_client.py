import requests
from typing import List, Optional

from config.settings import config_manager
from core.errors import FetchError, UnexpectedShape
from core.wqxr_scraper import ScrapedTrack
from utils.logging_config import get_logger

logger = get_logger("proxy_client")


class WqxrProxyClient:
    """Client for the scraping proxy's /wqxr-playlist endpoint"""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30):
        self.base_url = (base_url or config_manager.get('proxy.url', 'http://localhost:3001')).rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'Accept': 'application/json'})

    def fetch_tracks(self, year, month, day) -> List[ScrapedTrack]:
        try:
            response = self.session.get(
                f"{self.base_url}/wqxr-playlist",
                params={'year': year, 'month': month, 'day': day},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(f"Proxy returned {status}", status=status,
                             user_message="Failed to fetch data from proxy server. Make sure it is running.") from e
        except requests.RequestException as e:
            raise FetchError(f"Proxy unreachable: {e}",
                             user_message="Failed to fetch data from proxy server. Make sure it is running.") from e
        except ValueError as e:
            raise UnexpectedShape(f"Proxy returned invalid JSON: {e}",
                                  "The proxy server returned an unreadable response.") from e

        tracks = data.get('tracks') if isinstance(data, dict) else None
        if not isinstance(tracks, list):
            raise UnexpectedShape("Proxy response has no 'tracks' list",
                                  "The proxy server returned an unreadable response.")

        scraped = []
        for entry in tracks:
            if isinstance(entry, dict) and entry.get('title') and entry.get('composer'):
                scraped.append(ScrapedTrack(title=str(entry['title']), performer=str(entry['composer'])))
            else:
                logger.warning(f"Skipping malformed proxy track entry: {entry!r}")

        logger.info(f"Proxy returned {len(scraped)} tracks for {year}-{month}-{day}")
        return scraped
