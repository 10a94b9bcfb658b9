# src/anvil_guard/errors.py

from __future__ import annotations


class AnvilError(Exception):
    """Base class for errors raised by anvil_guard."""


class ConfigError(AnvilError):
    """Invalid or inconsistent configuration."""


class StoreUnavailableError(AnvilError):
    """
    The local store could not be read or written.

    Enforcement callers must treat this as "unknown", never as "not blocked".
    Workers map it to a retry.
    """


class NotificationError(AnvilError):
    """A notification could not be delivered (permission denied, transport down, ...)."""
