#!/usr/bin/env python3

import argparse
import json
import sys
import time

from config.settings import config_manager
from utils.logging_config import setup_logging, get_logger

logger = get_logger("main")


def _parse_param(raw: str):
    """key=value; values that parse as JSON (numbers, lists) are decoded"""
    if '=' not in raw:
        raise argparse.ArgumentTypeError(f"Expected key=value, got '{raw}'")
    key, value = raw.split('=', 1)
    try:
        return key, json.loads(value)
    except ValueError:
        return key, value


def run_task(kind: str, params: dict, poll_interval: float = 0.5) -> int:
    from core.gemini_client import GeminiClient
    from core.proxy_client import WqxrProxyClient
    from core.session import CurationSession, Pacing
    from core.spotify_client import SpotifyClient
    from services.curation_tasks import TASK_KINDS
    from services.task_controller import TaskController, TERMINAL_STATES, TaskState

    task_kind = TASK_KINDS.get(kind)
    if task_kind is None:
        print(f"Unknown task '{kind}'. Available: {', '.join(TASK_KINDS)}")
        return 2

    if task_kind.validate:
        try:
            task_kind.validate(**params)
        except ValueError as e:
            print(str(e))
            return 2

    session = CurationSession(
        client=SpotifyClient.from_config(),
        pacing=Pacing.from_config(config_manager.get_pipeline_config()),
        gemini=GeminiClient() if task_kind.needs_ai else None,
        proxy=WqxrProxyClient() if task_kind.needs_proxy else None
    )

    controller = TaskController()
    controller.start(kind, task_kind.runner, session, label=task_kind.label, **params)

    last_line = None
    try:
        while True:
            status = controller.status()
            line = f"[{status['progress']:5.1f}%] {status['message']}"
            if line != last_line:
                print(line)
                last_line = line
            if TaskState(status['status']) in TERMINAL_STATES:
                break
            time.sleep(poll_interval)
    except KeyboardInterrupt:
        print("Cancelling...")
        controller.cancel()
        status = controller.wait()
        print(status['message'])
    finally:
        controller.shutdown()

    if status['created_playlists']:
        print(f"Playlists: {', '.join(status['created_playlists'])}")
    if status['result'] and status['result']['data'].get('genres'):
        print('\n'.join(status['result']['data']['genres']))
    return 0 if status['status'] == TaskState.SUCCEEDED.value else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Playlist curator: scraping proxy, curation API and task runner")
    parser.add_argument('--log-level', default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest='command', required=True)

    proxy = subparsers.add_parser('proxy', help="Run the WQXR scraping proxy")
    proxy.add_argument('--host', default=None)
    proxy.add_argument('--port', type=int, default=None)

    serve = subparsers.add_parser('serve', help="Run the curation API")
    serve.add_argument('--host', default=None)
    serve.add_argument('--port', type=int, default=None)

    run = subparsers.add_parser('run', help="Run one curation task in the foreground")
    run.add_argument('kind', help="wqxr_daily, ai_playlist, top_tracks, all_songs, genre_scan, genre_fusion")
    run.add_argument('-p', '--param', action='append', type=_parse_param, default=[],
                     help="Task parameter as key=value, e.g. -p name='Rainy Day' -p genres='[\"jazz\"]'")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging_config = config_manager.get_logging_config()
    setup_logging(args.log_level or logging_config.get('level', 'INFO'), logging_config.get('file') or None)

    if args.command == 'proxy':
        import proxy_server
        proxy_server.run(args.host, args.port)
        return 0

    if args.command == 'serve':
        import web_server
        web_server.run(args.host, args.port)
        return 0

    return run_task(args.kind, dict(args.param))


if __name__ == '__main__':
    sys.exit(main())
