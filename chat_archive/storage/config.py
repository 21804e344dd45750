"""Global app configuration (storage backend, compression switches)."""

import json
from pathlib import Path
from typing import Any

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "storage_type": "document",
    "storage_fallback": True,
    "enable_combat_compression": True,
    "preserve_item_transfers": True,
    "combat_timeout_minutes": 5,
    "keep_originals": False,
}

STORAGE_TYPES = ("document", "flat-file")


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = dict(_CONFIG_DEFAULTS)
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        # Migrate: legacy "journal"/"external" names
        if stored.get("storage_type") == "journal":
            stored["storage_type"] = "document"
        elif stored.get("storage_type") == "external":
            stored["storage_type"] = "flat-file"
        for key in _CONFIG_DEFAULTS:
            if key in stored:
                config[key] = stored[key]
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    Unknown keys are ignored.
    """
    if "storage_type" in fields and fields["storage_type"] not in STORAGE_TYPES:
        raise ValueError(f"Unknown storage type: {fields['storage_type']}")
    if "combat_timeout_minutes" in fields and fields["combat_timeout_minutes"] <= 0:
        raise ValueError("combat_timeout_minutes must be positive")
    config = get_config()
    for key, value in fields.items():
        if key in _CONFIG_DEFAULTS:
            config[key] = value
    _config_path().write_text(json.dumps(config, indent=2))
    return config
