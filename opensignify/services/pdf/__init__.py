"""PDF rendering of invoices."""

from .composer import Block, DocumentLayout, Element, InvoiceComposer, output_filename

__all__ = ["Block", "DocumentLayout", "Element", "InvoiceComposer", "output_filename"]
