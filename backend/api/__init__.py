"""API route handlers."""
from . import connections, holdings, securities

__all__ = ["connections", "holdings", "securities"]
