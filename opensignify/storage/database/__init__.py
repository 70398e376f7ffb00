"""SQLAlchemy persistence."""

from .base import Base, dispose_db, get_session, init_db
from .models import InvoiceRow

__all__ = ["Base", "InvoiceRow", "dispose_db", "get_session", "init_db"]
