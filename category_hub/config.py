"""
Configuration and logging management for Category Hub.

Settings live in a JSON file next to the package (AI provider and keys,
suggestion payload limits, repository location, report paging). Keys
missing from an older file are backfilled from `default_config()`.

Logging goes to the root logger: a DEBUG file handler plus a console
handler whose level and stream the caller chooses. The CLI sends the
console to stderr so command output on stdout stays machine-readable.
"""

import os
import sys
import json
import logging

# Version
SCRIPT_VERSION = "1.0.0 - Category Hub"

# File paths
APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_FILE = os.path.join(APP_DIR, "config.json")
DATA_DIR = os.path.join(APP_DIR, "data")


def default_config():
    """Return a fresh copy of the default configuration."""
    return {
        "_AI_SETTINGS": "AI settings for category mapping suggestions.",
        "AI_PROVIDER": "openai",
        "_OPENAI_SETTINGS": "OpenAI/ChatGPT specific settings.",
        "OPENAI_API_KEY": "",
        "OPENAI_MODEL": "gpt-4o-mini",
        "_CLAUDE_AI_SETTINGS": "Claude AI specific settings.",
        "CLAUDE_API_KEY": "",
        "CLAUDE_MODEL": "claude-sonnet-4-5-20250929",
        "AI_TIMEOUT": 120,
        "_SUGGESTION_SETTINGS": "Limits for the candidate payload sent to the AI.",
        "SUGGESTION_MAX_CANDIDATES": 6,
        "SUGGESTION_MAX_TARGETS": 220,
        "SUGGESTION_MAX_CANONICAL": 120,
        "_STORE_SETTINGS": "Where the category repository snapshot is kept.",
        "DATA_FILE": os.path.join(DATA_DIR, "category_hub.json"),
        "LOG_FILE": "",
        "MASTER_SHOP_ID": None,
        "_VALIDATION_SETTINGS": "Default category report paging.",
        "VALIDATION_PER_PAGE": 50,
        "VALIDATION_CHUNK_SIZE": 100,
        "VERBOSE": False
    }


def load_config():
    """
    Load settings from CONFIG_FILE.

    A missing file is created with the defaults. Keys added since the file
    was written are filled in from `default_config()`; unreadable or
    malformed files fall back to the defaults and are left untouched.
    """
    default = default_config()

    try:
        if not os.path.exists(CONFIG_FILE):
            with open(CONFIG_FILE, "w", encoding="utf-8") as f:
                json.dump(default, f, indent=4)
            return default

        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            loaded_config = json.load(f)
    except json.JSONDecodeError as e:
        logging.error(f"Failed to parse config.json: {e}. Using defaults.")
        return default
    except IOError as e:
        logging.error(f"Failed to read/write config.json: {e}. Using defaults.")
        return default
    except Exception as e:
        logging.error(f"Unexpected error loading config: {e}. Using defaults.")
        return default

    if not isinstance(loaded_config, dict):
        logging.error("Failed to parse config.json: top level is not an object. Using defaults.")
        return default

    for key, value in default.items():
        loaded_config.setdefault(key, value)
    return loaded_config


def save_config(config):
    """Write settings back to CONFIG_FILE; failures are logged, not raised."""
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4)
    except IOError as e:
        logging.error(f"Failed to write config.json: {e}")
    except Exception as e:
        logging.error(f"Unexpected error saving config: {e}")


def setup_logging(log_path: str, level: int = logging.INFO, stream=None):
    """
    Configure logging to file and console.

    Args:
        log_path: Path to log file
        level: Console logging level (typically INFO)
        stream: Console stream (default: stdout)
    """
    try:
        for h in logging.root.handlers[:]:
            logging.root.removeHandler(h)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )

        console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        )

        logging.root.setLevel(logging.DEBUG)
        logging.root.addHandler(file_handler)
        logging.root.addHandler(console_handler)

        install_global_exception_logging()
    except Exception as e:
        print(f"Failed to setup logging: {e}", file=sys.stderr)
        raise


def install_global_exception_logging():
    """Log all unhandled exceptions to the log file."""
    def _log_excepthook(exctype, value, tb):
        logging.critical(
            "Unhandled exception",
            exc_info=(exctype, value, tb)
        )
        sys.__excepthook__(exctype, value, tb)

    sys.excepthook = _log_excepthook


_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_and_status(status_fn, msg: str, level: str = "info", ui_msg: str = None):
    """
    Log a progress message and forward it to the caller's status callback.

    Sync and suggestion runs report progress through this so the CLI (or any
    other front end) sees the same lines that land in the log file.

    Args:
        status_fn: Function receiving user-facing status lines (can be None)
        msg: Detailed message for the log
        level: "debug", "info", "warning" or "error"; unknown values log at INFO
        ui_msg: Optional shorter message for the status callback
    """
    logging.log(_LOG_LEVELS.get(level, logging.INFO), msg)

    if status_fn is None:
        return
    try:
        status_fn(msg if ui_msg is None else ui_msg)
    except Exception as e:
        logging.warning(f"status_fn raised while logging message: {e}", exc_info=True)
        print(f"[STATUS] {msg if ui_msg is None else ui_msg}")
