"""Invoice persistence."""

from .repository import InMemoryInvoiceStore, InvoiceStore, SqlAlchemyInvoiceStore
from .session import db_session

__all__ = ["InMemoryInvoiceStore", "InvoiceStore", "SqlAlchemyInvoiceStore", "db_session"]
