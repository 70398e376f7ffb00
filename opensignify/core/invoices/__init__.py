"""Invoice lifecycle and orchestration."""

from .lifecycle import InvoiceLifecycle
from .service import InvoiceService

__all__ = ["InvoiceLifecycle", "InvoiceService"]
