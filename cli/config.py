import os
import json
import datetime
from pathlib import Path
from typing import Optional

CONFIG_DIR = Path.home() / ".silent-auction"
CONFIG_FILE = CONFIG_DIR / "config.json"
TOKEN_FILE = CONFIG_DIR / "token.txt"
SERVER_URL = os.getenv("AUCTION_SERVER_URL", "http://localhost:8000")


def ensure_config_dir():
    """Ensure config directory exists."""
    CONFIG_DIR.mkdir(exist_ok=True)


def load_config() -> dict:
    ensure_config_dir()
    if CONFIG_FILE.exists():
        return json.loads(CONFIG_FILE.read_text())
    return {}


def save_config(config: dict):
    ensure_config_dir()
    CONFIG_FILE.write_text(json.dumps(config, indent=2))


def get_token() -> Optional[str]:
    """Get stored API token."""
    ensure_config_dir()
    if TOKEN_FILE.exists():
        return TOKEN_FILE.read_text().strip()
    return None


def save_token(token: str):
    """Save API token."""
    ensure_config_dir()
    TOKEN_FILE.write_text(token)


def get_default_auction() -> Optional[int]:
    """Auction a bid-entry station is working on, if one was selected."""
    auction_id = load_config().get("auction_id")
    return int(auction_id) if auction_id else None


def save_default_auction(auction_id: int):
    config = load_config()
    config["auction_id"] = auction_id
    save_config(config)


def get_timezone() -> str:
    """Get user timezone from config, or use system local timezone."""
    configured_tz = load_config().get("timezone")
    if configured_tz:
        return configured_tz

    # /etc/localtime is a symlink into the zoneinfo tree on Linux and macOS,
    # e.g. /usr/share/zoneinfo/America/New_York
    localtime_path = Path("/etc/localtime")
    if localtime_path.exists():
        parts = localtime_path.resolve().parts
        for zoneinfo_name in ["zoneinfo", "zoneinfo.default"]:
            if zoneinfo_name in parts:
                tz_name = "/".join(parts[parts.index(zoneinfo_name) + 1:])
                if tz_name:
                    return tz_name

    local_tz = datetime.datetime.now().astimezone().tzinfo
    key = getattr(local_tz, "key", None)
    if key:
        return key

    return "UTC"
