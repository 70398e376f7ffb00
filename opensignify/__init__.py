"""OpenSignify - draft, send and countersign invoices."""

__version__ = "0.1.0"
