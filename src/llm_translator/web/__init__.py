"""Web control surface for the translation engine."""

from flask import Flask

from llm_translator.translation.engine import TranslationEngine


def create_app(engine: TranslationEngine) -> Flask:
    """Application factory for the HTTP interface."""
    from .app import build_app  # Import here to avoid circular imports

    return build_app(engine)


__all__ = ["create_app"]
