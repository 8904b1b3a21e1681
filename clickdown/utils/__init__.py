"""Shared utilities: configuration, logging, models and storage helpers."""
