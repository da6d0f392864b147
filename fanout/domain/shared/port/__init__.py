"""Shared ports."""

from .control_plane import ControlPlane, WatchEvent
from .event_recorder import EventRecorder
from .secret_resolver import SecretResolver

__all__ = ["ControlPlane", "EventRecorder", "SecretResolver", "WatchEvent"]
