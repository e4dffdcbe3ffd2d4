"""
Engine Settings - Configuration for the flow graph engine.

Settings are plain values that can be saved to and loaded from a JSON
file in the user's config directory.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "flowly" / "settings.json"


@dataclass
class EngineSettings:
    """
    Engine-wide settings.

    These settings are read when a GraphStore is created.
    """
    # Initial value of the global read-only flag
    read_only: bool = False

    # Id formats: "<prefix>-<n>"
    node_id_prefix: str = "node"
    connection_id_prefix: str = "conn"

    # JSON indentation used when saving documents
    indent: int | None = 2

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            "read_only": self.read_only,
            "node_id_prefix": self.node_id_prefix,
            "connection_id_prefix": self.connection_id_prefix,
            "indent": self.indent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineSettings:
        """Create settings from dictionary."""
        return cls(
            read_only=bool(data.get("read_only", False)),
            node_id_prefix=data.get("node_id_prefix") or "node",
            connection_id_prefix=data.get("connection_id_prefix") or "conn",
            indent=data.get("indent", 2),
        )

    @classmethod
    def load(cls, path: Path | None = None) -> EngineSettings:
        """
        Load settings from a JSON file.

        A missing file gives the defaults. An unreadable file is logged
        and also gives the defaults.
        """
        if path is None:
            path = DEFAULT_SETTINGS_PATH

        if not path.exists():
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("settings must be a JSON object")
            return cls.from_dict(data)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load settings from %s: %s", path, e)
            return cls()

    def save(self, path: Path | None = None) -> Path:
        """Save settings to a JSON file, creating parent directories."""
        if path is None:
            path = DEFAULT_SETTINGS_PATH

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

        return path
