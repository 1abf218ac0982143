#!/usr/bin/env python3
"""Scraping proxy: fetches a WQXR daily playlist page and returns it as JSON.

Runs as its own process so the browser app can read the page without
cross-origin restrictions. One route, no auth, any origin.
"""

from flask import Flask, request, jsonify
from flask_cors import CORS

from config.settings import config_manager
from core.errors import CuratorError
from core.wqxr_scraper import WqxrScraper, normalize_date_parts, tracks_to_json
from utils.logging_config import get_logger

logger = get_logger("proxy_server")


def create_app(scraper: WqxrScraper = None) -> Flask:
    app = Flask(__name__)
    CORS(app, send_wildcard=True)
    app.config['SCRAPER'] = scraper or WqxrScraper()

    @app.route('/wqxr-playlist', methods=['GET'])
    def wqxr_playlist():
        year = request.args.get('year', '').strip()
        month = request.args.get('month', '').strip()
        day = request.args.get('day', '').strip()

        if not year or not month or not day:
            return jsonify({"error": "Missing required date parameters (year, month, day)."}), 400

        try:
            year, month, day = normalize_date_parts(year, month, day)
        except ValueError as e:
            return jsonify({"error": f"Invalid date parameters: {e}."}), 400

        try:
            tracks = app.config['SCRAPER'].fetch_daily_playlist(year, month, day)
        except CuratorError as e:
            logger.error(f"Error fetching or parsing playlist data: {e}")
            return jsonify({"error": "Failed to fetch playlist data from WQXR."}), 500

        return jsonify({"tracks": tracks_to_json(tracks)})

    return app


def run(host: str = None, port: int = None):
    proxy_config = config_manager.get_proxy_config()
    host = host or proxy_config.get('host', '127.0.0.1')
    port = port or int(proxy_config.get('port', 3001))
    logger.info(f"Proxy server listening on {host}:{port}")
    create_app().run(host=host, port=port)


if __name__ == '__main__':
    from utils.logging_config import setup_logging
    setup_logging(config_manager.get('logging.level', 'INFO'))
    run()
