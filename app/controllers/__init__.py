"""FastAPI routers acting as controllers in the MVC architecture."""

from . import summaries

__all__ = ["summaries"]
