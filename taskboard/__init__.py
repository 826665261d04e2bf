"""Taskboard: task management API with JWT sessions and refresh-token rotation."""

__version__ = "1.0.0"
