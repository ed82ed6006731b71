"""HTTP routers."""

from galleria.routers import images, search

__all__ = ["images", "search"]
