"""
Configuration module for Sentinel.

Centralizes all configuration with environment variable support,
validation, and caching for performance.
"""

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("SENTINEL_ENV", "dev")  # dev|stage|prod

# Persistence
DB_PATH = os.getenv("SENTINEL_DB_PATH", "data/sentinel.db")
DB_TIMEOUT = float(os.getenv("SENTINEL_DB_TIMEOUT", "5"))

# Sensor failure simulation
SENSOR_FAILURE_RATE = float(os.getenv("SENSOR_FAILURE_RATE", "0.05"))
SENSOR_SEED = os.getenv("SENTINEL_SENSOR_SEED", "")

# External subject directory
DIRECTORY_URL = os.getenv("DIRECTORY_URL", "")
DIRECTORY_TIMEOUT = float(os.getenv("DIRECTORY_TIMEOUT", "3"))

# Optional location catalog override (JSON list of locations)
LOCATIONS_PATH = os.getenv("LOCATIONS_PATH", "")

# Logging
LOG_LEVEL = os.getenv("SENTINEL_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("SENTINEL_LOG_JSON", "1").lower() in ("1", "true", "yes")

# Cache TTL (seconds)
CONFIG_CACHE_TTL = int(os.getenv("CONFIG_CACHE_TTL", "60"))


# ============================================================
# Cached Configuration Loaders
# ============================================================

class CachedConfig:
    """
    Thread-safe cached configuration loader.
    Reloads configuration files periodically based on TTL.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._cache: Dict[str, Any] = {}
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def _is_stale(self, key: str) -> bool:
        if key not in self._timestamps:
            return True
        return (time.time() - self._timestamps[key]) > self._ttl

    def get_json(self, path: str, force_reload: bool = False) -> Any:
        """
        Load JSON file with caching.
        Returns cached version if within TTL, otherwise reloads.
        """
        with self._lock:
            if not force_reload and path in self._cache and not self._is_stale(path):
                return self._cache[path]

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            self._cache[path] = data
            self._timestamps[path] = time.time()
            return data

    def invalidate(self, path: Optional[str] = None) -> None:
        """Invalidate cache for a specific path or all paths."""
        with self._lock:
            if path:
                self._cache.pop(path, None)
                self._timestamps.pop(path, None)
            else:
                self._cache.clear()
                self._timestamps.clear()


_config_cache = CachedConfig(ttl_seconds=CONFIG_CACHE_TTL)


def load_json_cached(path: str) -> Any:
    """Load JSON file with caching."""
    return _config_cache.get_json(path)


def load_locations(path: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
    """
    Load the location catalog override, if one is configured.

    Returns None when no override file is set so callers fall back
    to the built-in catalog.
    """
    path = path or LOCATIONS_PATH
    if not path:
        return None
    data = load_json_cached(path)
    if isinstance(data, dict):
        data = data.get("locations", [])
    return data


def invalidate_config_cache() -> None:
    """Invalidate all cached configuration."""
    _config_cache.invalidate()


def sensor_seed() -> Optional[int]:
    """Seed for the sensor failure RNG, or None for an unseeded source."""
    return int(SENSOR_SEED) if SENSOR_SEED else None


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate configured values.
    Returns dict of check name -> ok.
    """
    checks = {
        "sensor_failure_rate": 0.0 <= SENSOR_FAILURE_RATE <= 1.0,
        "db_directory": Path(DB_PATH).parent.exists() or not Path(DB_PATH).parent.parts,
    }
    if LOCATIONS_PATH:
        checks["locations"] = Path(LOCATIONS_PATH).exists()
    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("SENTINEL_DEBUG", "").lower() in ("1", "true", "yes")
