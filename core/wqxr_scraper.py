"""
WQXR daily playlist scraper.

Fetches the station's public "playlist-daily" page for one date and extracts
title/performer pairs. The selectors below follow the page's current markup
and will need updating when the site changes; nothing else in the pipeline
depends on the markup.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import requests
from bs4 import BeautifulSoup

from config.settings import config_manager
from core.errors import ParseError, ScrapeError
from utils.logging_config import get_logger

logger = get_logger("wqxr_scraper")

DEFAULT_BASE_URL = "https://wqxr-legacy.prod.nypr.digital/playlist-daily"
DEFAULT_STATION = "q2"

# Markup coupling lives here and only here
PLAYLIST_ITEM_SELECTOR = ".playlist-item"
TITLE_SELECTOR = ".playlist-item__title"
PERFORMER_SELECTORS = (".playlist-item__composer", ".playlist-item__musicians")

MONTH_ABBREVIATIONS = ('jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'oct', 'nov', 'dec')

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


@dataclass(frozen=True)
class ScrapedTrack:
    title: str
    performer: str

    def to_json(self) -> Dict[str, str]:
        # The proxy contract names the performer field "composer"
        return {"title": self.title, "composer": self.performer}


def clean_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace and trim"""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def _first_text(element, selectors) -> str:
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None:
            text = clean_text(found.get_text(" "))
            if text:
                return text
    return ""


def scrape(html: Union[str, bytes]) -> List[ScrapedTrack]:
    """Extract every playlist row that has both a title and a performer.

    Rows missing either field are dropped silently; an empty page yields an
    empty list.
    """
    try:
        soup = BeautifulSoup(html, 'html.parser')
    except Exception as e:
        raise ParseError(f"Could not parse playlist markup: {e}", "Could not read the WQXR playlist page.") from e

    tracks = []
    for element in soup.select(PLAYLIST_ITEM_SELECTOR):
        title = _first_text(element, (TITLE_SELECTOR,))
        performer = _first_text(element, PERFORMER_SELECTORS)
        if title and performer:
            tracks.append(ScrapedTrack(title=title, performer=performer))
        else:
            logger.debug(f"Dropping incomplete playlist row (title={title!r}, performer={performer!r})")

    return tracks


def normalize_date_parts(year: Union[str, int], month: str, day: Union[str, int]) -> Tuple[str, str, str]:
    """Validate one playlist date as ("2025", "jun", "03"); raises ValueError otherwise.

    The parts end up in the upstream URL path, so anything but a four digit
    year, a short month name and a day number is rejected.
    """
    year_part = str(year).strip()
    month_part = str(month).strip().lower()
    day_part = str(day).strip()

    if not re.fullmatch(r'[0-9]{4}', year_part):
        raise ValueError(f"Invalid year '{year}'")
    if month_part not in MONTH_ABBREVIATIONS:
        raise ValueError(f"Invalid month '{month}', expected one of {', '.join(MONTH_ABBREVIATIONS)}")
    if not re.fullmatch(r'[0-9]{1,2}', day_part) or not 1 <= int(day_part) <= 31:
        raise ValueError(f"Invalid day '{day}'")

    return year_part, month_part, day_part.zfill(2)


def build_playlist_url(year: Union[str, int], month: str, day: Union[str, int],
                       base_url: str = DEFAULT_BASE_URL, station: str = DEFAULT_STATION) -> str:
    """https://.../playlist-daily/2025/jun/12/?scheduleStation=q2"""
    year_part, month_part, day_part = normalize_date_parts(year, month, day)
    return f"{base_url.rstrip('/')}/{year_part}/{month_part}/{day_part}/?scheduleStation={station}"


class WqxrScraper:
    def __init__(self, base_url: Optional[str] = None, station: Optional[str] = None, timeout: Optional[float] = None):
        config = config_manager.get_wqxr_config()
        self.base_url = base_url or config.get('base_url', DEFAULT_BASE_URL)
        self.station = station or config.get('station', DEFAULT_STATION)
        self.timeout = timeout or config.get('timeout', 15)
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def get_page(self, url: str) -> str:
        """Fetch one page. Any network failure or non-2xx status is a ScrapeError, never retried."""
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ScrapeError(f"Scrape target returned {status} for {url}", status=status,
                              user_message="Failed to fetch playlist data from WQXR.") from e
        except requests.RequestException as e:
            raise ScrapeError(f"Error fetching {url}: {e}",
                              user_message="Failed to fetch playlist data from WQXR.") from e
        return response.text

    def fetch_daily_playlist(self, year, month, day) -> List[ScrapedTrack]:
        url = build_playlist_url(year, month, day, base_url=self.base_url, station=self.station)
        logger.info(f"Fetching WQXR playlist from {url}")

        tracks = scrape(self.get_page(url))

        if tracks:
            logger.info(f"Scraped {len(tracks)} tracks for {year}-{month}-{day}")
        else:
            logger.warning(f"No tracks found on {url}, the page markup may have changed")
        return tracks


def tracks_to_json(tracks: List[ScrapedTrack]) -> List[Dict[str, str]]:
    return [track.to_json() for track in tracks]
