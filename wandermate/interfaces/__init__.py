# interfaces/__init__.py
"""
Interfaces Package

Contains data stores:
- session_store: Session state with per-session locks (memory or Redis)
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session_store import SessionStore, create_session_store

__all__ = [
    "SessionStore",
    "create_session_store"
]
