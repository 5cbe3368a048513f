"""API route handlers."""
from . import dashboard, saltedge

__all__ = ["dashboard", "saltedge"]
