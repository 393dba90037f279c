"""
API Routers
"""

from . import auth, entries, jira

__all__ = ["auth", "entries", "jira"]
