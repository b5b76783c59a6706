"""
Engine configuration parameters for the auction house.

Defines time-source selection, auction defaults, and logging options.
Values can be overridden from a JSON file and from AUCTIONHOUSE_*
environment variables (a local .env file is honored).
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "AUCTIONHOUSE_"


@dataclass
class EngineConfig:
    """Engine-wide configuration parameters"""

    # Time source: "timestamp" (unix seconds) or "block" (block index)
    time_unit: str = "timestamp"

    # Auction defaults; create_auction falls back to these when passed None
    default_duration: int = 3600  # One hour
    default_min_bid_increment: int = 10**16  # 0.01 ether in wei
    max_duration: int = 365 * 24 * 3600

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: Path = Path("logs")

    def __post_init__(self):
        if self.time_unit not in ("timestamp", "block"):
            raise ValueError(f"Unknown time unit: {self.time_unit}")
        self.log_dir = Path(self.log_dir)


# Global config instance (can be overridden)
config = EngineConfig()


def _coerce(raw: str, current):
    """Convert an environment string to the type of the current value."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, Path):
        return Path(raw)
    return raw


def load_config(config_path: Optional[str] = None, use_env: bool = True) -> EngineConfig:
    """
    Load configuration from file and environment, falling back to defaults.

    Precedence: environment > JSON file > dataclass defaults.

    Args:
        config_path: Optional path to a JSON config file
        use_env: Whether to apply AUCTIONHOUSE_* environment overrides

    Returns:
        EngineConfig instance
    """
    values = {}

    if config_path:
        data = json.loads(Path(config_path).read_text())
        known = {f.name for f in fields(EngineConfig)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        values.update(data)

    if use_env:
        load_dotenv()
        defaults = EngineConfig()
        for f in fields(EngineConfig):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                values[f.name] = _coerce(raw, values.get(f.name, getattr(defaults, f.name)))

    return EngineConfig(**values)
