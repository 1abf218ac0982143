import pytest
import requests
from unittest.mock import MagicMock

from core.errors import FetchError, UnexpectedShape
from core.proxy_client import WqxrProxyClient
from core.wqxr_scraper import ScrapedTrack


def _client(json_body=None, error=None, json_error=None):
    client = WqxrProxyClient(base_url="http://proxy.test:3001/", timeout=3)
    client.session = MagicMock()
    response = MagicMock()
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_body
    if error is not None:
        client.session.get.side_effect = error
    else:
        client.session.get.return_value = response
    return client


def test_fetch_tracks_decodes_entries():
    client = _client({"tracks": [
        {"title": "Bolero", "composer": "Ravel"},
        {"title": "", "composer": "Nobody"},
        "not an object",
        {"title": "Nocturne", "composer": "Chopin"},
    ]})

    tracks = client.fetch_tracks("2025", "jun", "12")

    assert tracks == [ScrapedTrack("Bolero", "Ravel"), ScrapedTrack("Nocturne", "Chopin")]
    client.session.get.assert_called_once_with(
        "http://proxy.test:3001/wqxr-playlist", params={'year': "2025", 'month': "jun", 'day': "12"}, timeout=3
    )


def test_unreachable_proxy_is_fetch_error():
    client = _client(error=requests.ConnectionError("refused"))

    with pytest.raises(FetchError) as exc_info:
        client.fetch_tracks("2025", "jun", "12")
    assert "proxy server" in exc_info.value.user_message


def test_missing_tracks_list_is_unexpected_shape():
    with pytest.raises(UnexpectedShape):
        _client({"error": "nope"}).fetch_tracks("2025", "jun", "12")


def test_invalid_json_is_unexpected_shape():
    with pytest.raises(UnexpectedShape):
        _client(json_error=ValueError("Expecting value")).fetch_tracks("2025", "jun", "12")
