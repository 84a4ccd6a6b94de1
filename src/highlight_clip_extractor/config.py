"""Persistent settings for highlight clip extractor."""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "highlight-clip-extractor" / "config.json"


@dataclass
class Settings:
    """
    User defaults for the command line.

    Attributes:
        seconds_before: Padding before each highlight marker
        seconds_after: Padding after each highlight marker
        output_dir: Default directory for extracted clips
        stream_copy: Cut without re-encoding by default
        gpu: Default GPU encoder
    """
    seconds_before: float = 8.0
    seconds_after: float = 2.0
    output_dir: Optional[str] = None
    stream_copy: bool = False
    gpu: Optional[str] = None

    def validate(self) -> "Settings":
        """
        Check padding values.

        Raises:
            ValidationError: If a padding is negative
        """
        if self.seconds_before < 0 or self.seconds_after < 0:
            raise ValidationError(
                "Padding must not be negative",
                context={
                    "seconds_before": self.seconds_before,
                    "seconds_after": self.seconds_after
                }
            )
        return self

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a JSON file.

        A missing or unreadable file gives the defaults; unknown keys are
        ignored.
        """
        path = Path(path) if path else DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable settings file {path}: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {path}: expected a JSON object")
            return cls()

        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def save(self, path: Optional[Path] = None) -> Path:
        """Write settings as indented JSON, creating the directory if needed."""
        path = Path(path) if path else DEFAULT_CONFIG_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(asdict(self), f, indent=2)
        return path
