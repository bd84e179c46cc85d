# dispatch_display/config.py

import json
import logging
import os
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


# ---------- Optional .env loader ----------
def load_dotenv(path: str = ".env"):
    """Copy KEY=value lines into the environment without overriding what is already set."""
    if not path:
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.warning(f"Could not read .env file {path}: {e}")
        return
    for raw in lines:
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = (part.strip() for part in line.split("=", 1))
        if key and key not in os.environ:
            os.environ[key] = val.strip('"').strip("'")


# ---------- Optional YAML config ----------
def load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or os.getenv("CONFIG_FILE")
    if not path:
        return {}
    try:
        import yaml  # requires PyYAML
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Could not load CONFIG_FILE {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"CONFIG_FILE {path} is not a mapping, ignoring it")
        return {}
    return data


def _env_bool(val: str) -> bool:
    return val.strip().lower() in ("1", "true", "yes", "on")


def _converter_for(default: Any) -> Optional[Callable[[str], Any]]:
    # bool first: it is also an int
    if isinstance(default, bool):
        return _env_bool
    if isinstance(default, int):
        return int
    if isinstance(default, float):
        return float
    if isinstance(default, (dict, list)):
        return json.loads
    return None


def cfg_get(cfg: Dict[str, Any], name: str, default: Any):
    # order: YAML -> ENV -> default
    if name in cfg:
        return cfg[name]
    val = os.getenv(name)
    if val is None:
        return default
    convert = _converter_for(default)
    if convert is None:
        return val
    try:
        return convert(val)
    except ValueError:
        logger.warning(f"Ignoring {name}={val!r}, using {default!r}")
        return default


def cfg_int(cfg: Dict[str, Any], name: str, default: int, minimum: Optional[int] = None) -> int:
    """Integer knob, falling back to ``default`` when unparsable and raised to ``minimum``."""
    try:
        value = int(cfg_get(cfg, name, default))
    except (TypeError, ValueError):
        logger.warning(f"{name} is not an integer, using {default}")
        value = default
    if minimum is not None and value < minimum:
        return minimum
    return value


# ---------- Settings ----------
DEFAULTS: Dict[str, Any] = {
    "CALL_HISTORY_LIMIT": 20,
    "DISPLAY_TTL": 60 * 10,  # seconds a call stays active at the station
    "ADDRESS_SUFFIX": "",
    "MAX_ROUTE_METERS": 160934,  # 100 miles
    "STATUS_POSTS_LIMIT": 10,
    "STATIONS": [],
    "GOOGLE_DIRECTIONS_API_KEY": "",
    "GOOGLE_STATIC_MAPS_API_KEY": "",
    "GOOGLE_MAPS_API_KEY": "",
    "DIRECTIONS_TIMEOUT": 10.0,
    "ENVIRONMENT": "development",
    "HOST": "0.0.0.0",
    "PORT": 3000,
}

# integer knobs and their lower bounds
BOUNDED: Dict[str, int] = {
    "CALL_HISTORY_LIMIT": 1,
    "DISPLAY_TTL": 0,
    "STATUS_POSTS_LIMIT": 1,
    "PORT": 1,
}


def load_settings(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Resolve every known knob through YAML, then the environment, then DEFAULTS."""
    if cfg is None:
        cfg = load_yaml_config()
    settings = {}
    for name, default in DEFAULTS.items():
        if name in BOUNDED:
            settings[name] = cfg_int(cfg, name, default, BOUNDED[name])
        else:
            settings[name] = cfg_get(cfg, name, default)
    return settings
