"""Route blueprints for the web application."""

from .translation import translation_bp

__all__ = [
    "translation_bp",
]
