"""State management helpers for mcserverctl."""
from __future__ import annotations

from .registry import ServerRegistry

__all__ = ["ServerRegistry"]
