"""Shared helpers: logging, validation, datetime handling and errors."""
