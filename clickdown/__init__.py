"""ClickDown - ClickUp task extraction into flat, append-only tables."""

__version__ = "0.1.0"
