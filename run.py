"""Project root entry point for launching the translation service."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def _bootstrap_path() -> None:
    """Ensure the src/ directory is importable when running from project root."""
    project_root = Path(__file__).resolve().parent
    src_dir = project_root / "src"
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


def main():
    _bootstrap_path()
    from llm_translator.ai.exceptions import ConfigError
    from llm_translator.config import load_config, validate_config
    from llm_translator.logger import get_logger, set_log_mode
    from llm_translator.translation.engine import TranslationEngine
    from llm_translator.web import create_app

    logger = get_logger("run")
    config = load_config(os.environ.get("LLM_TRANSLATOR_CONFIG"))
    set_log_mode(config.get("log_mode", "info"))

    try:
        validate_config(config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    engine = TranslationEngine.from_config(config)
    engine.start()
    try:
        app = create_app(engine)
        app.run(host="127.0.0.1", port=int(os.environ.get("LLM_TRANSLATOR_PORT", 5500)), debug=False)
    finally:
        engine.stop()


if __name__ == "__main__":
    main()
