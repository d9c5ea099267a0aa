"""
Storage and persistence for lambda-autofix.

Provides SQLite persistence for cooldown state and attempt history.
"""

from .cooldown_store import CooldownStore

__all__ = ["CooldownStore"]
