"""
API layer for Notebox.

This module provides:
- Handle/query message models and their dispatcher
- HTTP gateway (FastAPI)

Invariants:
    - API semantics match NotificationService exactly
    - Errors carry the NoteboxError code
"""

from .http_server import create_app
from .messages import HandleAnswer, HandleMsg, QueryAnswer, QueryMsg, handle, query
from .settings import Settings

__all__ = [
    "create_app",
    "Settings",
    "HandleMsg",
    "HandleAnswer",
    "QueryMsg",
    "QueryAnswer",
    "handle",
    "query",
]
