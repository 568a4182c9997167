# leadscore/db/__init__.py
"""
Database package: async session management and the SQL store adapter.
"""

from leadscore.db.session import create_database_engine, dispose_engine, session_scope
from leadscore.db.store import SqlLeadStore

__all__ = [
    "create_database_engine",
    "dispose_engine",
    "session_scope",
    "SqlLeadStore",
]
