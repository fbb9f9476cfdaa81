"""Provider interfaces for mcserverctl."""
from __future__ import annotations

from .docker import DockerProvider
from .installer import CommandInstaller, ManualInstaller, RuntimeInstaller, select_installer

__all__ = [
    "CommandInstaller",
    "DockerProvider",
    "ManualInstaller",
    "RuntimeInstaller",
    "select_installer",
]
