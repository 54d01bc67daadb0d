import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from llm_translator.ai.exceptions import ConfigError, PresetNotFoundError
from llm_translator.logger import get_logger

logger = get_logger(__name__)

# Translation configuration constants
DEFAULT_MAX_CHUNK_CHARS = 2000  # Texts longer than this are split before translation
CHUNK_OVERLAP_CHARS = 50        # Source characters repeated at the start of each continuation chunk
CACHE_TTL_SECONDS = 300         # Cached translations live for 5 minutes
API_KEY_PLACEHOLDER = "YOUR_API_KEY_HERE"
API_KEY_ENV_VARS = ("LLM_TRANSLATOR_API_KEY", "OPENAI_API_KEY")

# Get base directory (project root)
BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_DIR = BASE_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Built-in prompt presets
DEFAULT_PRESETS = {
    "general": {
        "name": "General translation",
        "system": "Translate this text into fluent, grammatical English, preserving the meaning "
                  "of the original. Return only the translated text without any additions.",
    },
    "twitter": {
        "name": "Twitter style",
        "system": "Translate this text to English in a casual Twitter style. Keep it concise, use "
                  "common abbreviations where appropriate, and maintain the original tone. "
                  "Return only the translated text.",
    },
    "formal": {
        "name": "Formal style",
        "system": "Translate this text into formal, professional English suitable for business "
                  "correspondence. Maintain proper grammar and formal vocabulary. "
                  "Return only the translated text.",
    },
    "academic": {
        "name": "Academic style",
        "system": "Translate this text into academic English with precise terminology and formal "
                  "structure. Ensure clarity and scholarly tone. Return only the translated text.",
    },
    "creative": {
        "name": "Creative style",
        "system": "Translate this text into English with creative flair, maintaining the emotional "
                  "impact and artistic expression of the original. Return only the translated text.",
    },
}

# Default configuration template
DEFAULT_CONFIG = {
    "api": {
        "endpoint": "https://api.openai.com/v1/chat/completions",
        "model": "gpt-4.1-nano",
        "temperature": 0.3,
        "max_retries": 3,
        "timeout_seconds": 30,
        "max_tokens": None,
        "api_key": API_KEY_PLACEHOLDER,
    },
    "limits": {
        "requests_per_minute": 30,
        "requests_per_day": 500,
        "max_text_length": 5000,
        "min_text_length": 1,
        "max_chunk_chars": DEFAULT_MAX_CHUNK_CHARS,
    },
    "validation": {
        "allow_only_whitespace": False,
        "detect_binary_data": True,
        "trim_before_validate": True,
    },
    "prompt": {
        "active_preset": "general",
        "presets": DEFAULT_PRESETS,
        "custom": {},
    },
    "engine": {
        "poll_interval": 0.1,
        "cache_ttl": CACHE_TTL_SECONDS,
        "cache_cleanup_interval": 60,
    },
    "log_mode": "info",
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of base with override applied key by key (dicts merge recursively)."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_config() -> Dict[str, Any]:
    """A fresh, independent copy of the defaults."""
    return copy.deepcopy(DEFAULT_CONFIG)


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON file merged over the defaults.

    A missing file yields the defaults; an unreadable or corrupted file is
    logged and the defaults are used. The API key from the environment wins
    over the file.

    Args:
        path: Config file location; defaults to config/config.json under the project root.

    Returns:
        Complete configuration dict.
    """
    config_path = Path(path) if path else CONFIG_FILE
    config = default_config()

    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                overrides = json.load(f)
            if isinstance(overrides, dict):
                config = _deep_merge(config, overrides)
                logger.debug(f"Configuration loaded from {config_path}")
            else:
                logger.warning(f"Config file {config_path} is not a JSON object, using defaults")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file {config_path}: {e}")
            logger.warning("Using default configuration")
        except OSError as e:
            logger.error(f"Failed to read config file {config_path}: {e}")
            logger.warning("Using default configuration")
    else:
        logger.info(f"No config file at {config_path}, using defaults")

    for env_var in API_KEY_ENV_VARS:
        env_key = os.environ.get(env_var, '').strip()
        if env_key:
            config['api']['api_key'] = env_key
            logger.debug(f"API key taken from ${env_var}")
            break

    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate that the configuration can drive the engine.

    Raises:
        ConfigError: With details naming the offending field.
    """
    api = config.get('api', {})
    limits = config.get('limits', {})

    api_key = api.get('api_key') or ''
    if not api_key or api_key == API_KEY_PLACEHOLDER:
        raise ConfigError("API key not configured", details={"missing_field": "api.api_key"})

    endpoint = api.get('endpoint') or ''
    parsed = urlparse(endpoint)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigError(f"Invalid endpoint URL: {endpoint!r}", details={"field": "api.endpoint"})

    if not api.get('model'):
        raise ConfigError("Model not configured", details={"missing_field": "api.model"})

    _check_range(api, 'temperature', 0.0, 2.0, 'api')
    _check_range(api, 'max_retries', 1, 10, 'api')
    _check_range(api, 'timeout_seconds', 5, 300, 'api')
    _check_range(limits, 'requests_per_minute', 1, 100, 'limits')
    _check_range(limits, 'requests_per_day', 1, 10000, 'limits')
    _check_range(limits, 'max_text_length', 1, 100000, 'limits')

    if limits.get('max_chunk_chars', 0) < CHUNK_OVERLAP_CHARS * 2:
        raise ConfigError(
            f"max_chunk_chars must be at least {CHUNK_OVERLAP_CHARS * 2}",
            details={"field": "limits.max_chunk_chars"},
        )

    active = config.get('prompt', {}).get('active_preset', '')
    get_prompt_preset(config, active)


def _check_range(section: Dict[str, Any], key: str, low, high, section_name: str) -> None:
    value = section.get(key)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not low <= value <= high:
        raise ConfigError(
            f"{section_name}.{key} must be between {low} and {high}, got {value!r}",
            details={"field": f"{section_name}.{key}"},
        )


def get_prompt_preset(config: Dict[str, Any], preset_id: str) -> Dict[str, str]:
    """Look up a prompt preset, built-in presets first, then custom ones."""
    prompt = config.get('prompt', {})
    preset = prompt.get('presets', {}).get(preset_id) or prompt.get('custom', {}).get(preset_id)
    if not preset:
        raise PresetNotFoundError(preset_id)
    return preset


def get_all_presets(config: Dict[str, Any]) -> Dict[str, Dict[str, str]]:
    """All available presets (built-in and custom) by id."""
    prompt = config.get('prompt', {})
    presets = dict(prompt.get('presets', {}))
    for preset_id, preset in prompt.get('custom', {}).items():
        presets.setdefault(preset_id, preset)
    return presets
