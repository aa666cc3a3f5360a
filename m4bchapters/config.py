from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli
except ImportError:
    import tomli

DEFAULT_CONFIG_PATH = Path("m4bchapters.toml")

DEFAULT_FALLBACK_TITLE = "Full Audiobook"
DEFAULT_LOCALES = ["en"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigError(Exception):
    """Custom exception for configuration errors."""
    pass


def default_config() -> Dict[str, Any]:
    return _validate({})


def _validate(data: Dict[str, Any]) -> Dict[str, Any]:
    config_data = {}

    extraction_raw = data.get("extraction", {})
    if not isinstance(extraction_raw, dict):
        raise ConfigError("'extraction' must be a table")

    locales = extraction_raw.get("preferred_locales", DEFAULT_LOCALES)
    if not isinstance(locales, list) or not all(isinstance(locale, str) for locale in locales):
        raise ConfigError("extraction.preferred_locales must be a list of strings.")

    config_data["extraction"] = {
        "fallback_title": str(extraction_raw.get("fallback_title", DEFAULT_FALLBACK_TITLE)),
        "preferred_locales": list(locales),
    }
    if not config_data["extraction"]["fallback_title"].strip():
        raise ConfigError("extraction.fallback_title must not be empty.")

    logging_raw = data.get("logging", {})
    if not isinstance(logging_raw, dict):
        raise ConfigError("'logging' must be a table")

    config_data["logging"] = {
        "level": str(logging_raw.get("level", "INFO")).upper(),
        "list_boxes": logging_raw.get("list_boxes", False),
    }
    if not isinstance(config_data["logging"]["list_boxes"], bool):
        raise ConfigError("logging.list_boxes must be true or false.")
    if config_data["logging"]["level"] not in VALID_LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {VALID_LOG_LEVELS}")

    return config_data


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Loads configuration from a TOML file.

    Without an explicit path a missing default file is not an error; the
    built-in defaults are returned instead.
    """
    search_path = config_path if config_path else DEFAULT_CONFIG_PATH

    if not search_path.exists():
        if config_path:
            raise ConfigError(f"Configuration file not found at {search_path.resolve()}")
        return default_config()

    try:
        with open(search_path, "rb") as f:
            data = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"Error parsing TOML file {search_path.resolve()}: {e}")
    except OSError as e:
        raise ConfigError(f"Error reading configuration file {search_path.resolve()}: {e}")

    return _validate(data)


def get_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Loads and returns the configuration dictionary."""
    return load_config(config_path)
