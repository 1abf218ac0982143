import copy
import json
import os
from typing import Dict, Any, Optional
from cryptography.fernet import Fernet, InvalidToken
from pathlib import Path

from utils.logging_config import get_logger

logger = get_logger("settings")

DEFAULT_CONFIG: Dict[str, Any] = {
    "spotify": {
        "client_id": "",
        "redirect_uri": "http://127.0.0.1:5001/callback",
        "scope": "playlist-read-private playlist-read-collaborative playlist-modify-private "
                 "playlist-modify-public user-top-read user-read-private",
        "cache_path": ".spotify_cache",
        "access_token": "",
        "requests_timeout": 10
    },
    "gemini": {
        "api_key": "",
        "model": "gemini-2.0-flash",
        "timeout": 60
    },
    "wqxr": {
        "base_url": "https://wqxr-legacy.prod.nypr.digital/playlist-daily",
        "station": "q2",
        "timeout": 15
    },
    "proxy": {
        "host": "127.0.0.1",
        "port": 3001,
        "url": "http://localhost:3001"
    },
    "web": {
        "host": "127.0.0.1",
        "port": 5001
    },
    "pipeline": {
        "page_delay": 0.05,
        "search_delay": 0.05,
        "append_delay": 0.05,
        "artist_batch_delay": 0.05,
        "chunk_size": 100,
        "collection_size_limit": 10000
    },
    "logging": {
        "level": "INFO",
        "file": ""
    }
}


def _merge_defaults(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or os.environ.get("CURATOR_CONFIG", "config/config.json"))
        self.config_data: Dict[str, Any] = {}
        self.encryption_key: Optional[bytes] = None
        self._load_config()

    def _get_encryption_key(self) -> bytes:
        if self.encryption_key is not None:
            return self.encryption_key

        key_file = self.config_path.parent / ".encryption_key"
        if key_file.exists():
            with open(key_file, 'rb') as f:
                self.encryption_key = f.read()
        else:
            key_file.parent.mkdir(parents=True, exist_ok=True)
            self.encryption_key = Fernet.generate_key()
            with open(key_file, 'wb') as f:
                f.write(self.encryption_key)
            key_file.chmod(0o600)
        return self.encryption_key

    def _load_config(self):
        if not self.config_path.exists():
            logger.warning(f"Configuration file not found: {self.config_path}, using defaults")
            self.config_data = copy.deepcopy(DEFAULT_CONFIG)
            return

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self.config_data = _merge_defaults(DEFAULT_CONFIG, json.load(f))

    def load_config(self, config_path: str):
        self.config_path = Path(config_path)
        self.encryption_key = None
        self._load_config()

    def _save_config(self):
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(self.config_data, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        keys = key.split('.')
        value = self.config_data

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        keys = key.split('.')
        config = self.config_data

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self._save_config()

    def set_secret(self, key: str, value: str):
        """Store a value encrypted with the local Fernet key"""
        token = Fernet(self._get_encryption_key()).encrypt(value.encode('utf-8'))
        self.set(key, {"encrypted": token.decode('ascii')})

    def get_secret(self, key: str, default: str = "") -> str:
        """Read a secret written by set_secret; plain strings are returned as-is"""
        value = self.get(key)
        if not value:
            return default
        if isinstance(value, str):
            return value
        if isinstance(value, dict) and value.get("encrypted"):
            try:
                return Fernet(self._get_encryption_key()).decrypt(value["encrypted"].encode('ascii')).decode('utf-8')
            except InvalidToken:
                logger.error(f"Could not decrypt '{key}', the encryption key does not match")
                return default
        return default

    def get_spotify_config(self) -> Dict[str, Any]:
        return self.get('spotify', {})

    def get_gemini_config(self) -> Dict[str, Any]:
        return self.get('gemini', {})

    def get_wqxr_config(self) -> Dict[str, Any]:
        return self.get('wqxr', {})

    def get_proxy_config(self) -> Dict[str, Any]:
        return self.get('proxy', {})

    def get_web_config(self) -> Dict[str, Any]:
        return self.get('web', {})

    def get_pipeline_config(self) -> Dict[str, Any]:
        return self.get('pipeline', {})

    def get_logging_config(self) -> Dict[str, str]:
        return self.get('logging', {})

    def is_configured(self) -> bool:
        spotify = self.get_spotify_config()
        return bool(spotify.get('client_id')) or bool(spotify.get('access_token'))

    def validate_config(self) -> Dict[str, bool]:
        return {
            'spotify': self.is_configured(),
            'gemini': bool(self.get_secret('gemini.api_key')),
            'proxy': bool(self.get('proxy.url'))
        }


config_manager = ConfigManager()
