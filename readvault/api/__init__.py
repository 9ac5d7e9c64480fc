"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from readvault.api import app

    uvicorn readvault.api:app --reload
"""

from readvault.api.app import app

__all__ = ["app"]
