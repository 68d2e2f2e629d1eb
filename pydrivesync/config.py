"""Configuration management for pydrivesync."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com/drive/v3"
DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
CONFIG_FILE_NAME = "config.json"
MD5_CACHE_FILE_NAME = "file_cache.json"


class Config:
    """Settings resolved from environment variables and the config file.

    Environment variables take precedence over values stored in
    ``<config_dir>/config.json``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding config and cache files. Defaults to
                $DRIVESYNC_CONFIG_DIR or ~/.config/pydrivesync
        """
        if config_dir is None:
            env_dir = os.environ.get("DRIVESYNC_CONFIG_DIR")
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "pydrivesync"
            )
        self.config_dir = config_dir

    def get_config_path(self) -> Path:
        """Return the path of the JSON config file."""
        return self.config_dir / CONFIG_FILE_NAME

    def get_md5_cache_path(self) -> Path:
        """Return the path of the local md5 cache file."""
        return self.config_dir / MD5_CACHE_FILE_NAME

    def _load(self) -> dict[str, Any]:
        path = self.get_config_path()
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read config file {path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.get_config_path()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        # Config holds credentials
        path.chmod(0o600)

    @property
    def api_key(self) -> Optional[str]:
        """API key (bearer token) used for remote requests."""
        return os.environ.get("DRIVESYNC_API_KEY") or self._load().get("api_key")

    @property
    def api_url(self) -> str:
        """Base URL for metadata requests."""
        return (
            os.environ.get("DRIVESYNC_API_URL")
            or self._load().get("api_url")
            or DEFAULT_API_URL
        )

    @property
    def upload_url(self) -> str:
        """Base URL for content uploads."""
        return (
            os.environ.get("DRIVESYNC_UPLOAD_URL")
            or self._load().get("upload_url")
            or DEFAULT_UPLOAD_URL
        )

    def is_configured(self) -> bool:
        """Check whether an API key is available."""
        return bool(self.api_key)

    def save_api_key(self, api_key: str) -> None:
        """Persist the API key to the config file."""
        data = self._load()
        data["api_key"] = api_key
        self._save(data)


config = Config()
