"""codebox: run commands and file writes against registered projects in Docker."""

from __future__ import annotations

from codebox.service import CodeboxService, ToolResult
from codebox.sessions import SessionStore

__all__ = ["CodeboxService", "SessionStore", "ToolResult"]
