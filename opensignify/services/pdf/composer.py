"""Invoice PDF composer.

Composition runs in two phases. ``layout`` places every element on A4 pages
and is a pure function of the record. ``render`` draws that layout with
reportlab. Positions are millimetres measured from the top edge of the page,
with text positioned by its baseline.

The base-14 fonts only cover WinAnsi characters. A TrueType font can be
configured for body text; amounts whose currency symbol the body font cannot
draw are written with the ISO code instead.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen.canvas import Canvas

from opensignify.domain.enums import InvoiceStatus
from opensignify.domain.formatting import currency_symbol, format_amount, format_quantity
from opensignify.domain.models import InvoiceRecord
from opensignify.exceptions import CompositionError, ConfigurationError
from opensignify.signature.artifact import open_payload_image
from opensignify.utils.datetime import format_long_date, format_long_datetime
from opensignify.utils.logging import LogPerformance, get_logger

logger = get_logger(__name__)

PAGE_WIDTH = A4[0] / mm  # 210 mm
PAGE_HEIGHT = A4[1] / mm  # 297 mm

MARGIN = 15.0
TOP = 20.0
BOTTOM_MARGIN = 30.0
LINE_HEIGHT = 5.0
TOTAL_OFFSET = 20.0
COLUMN_GAP = 5.0
ITEM_INDENT = 5.0

SIGNATURE_WIDTH = 50.0
SIGNATURE_HEIGHT = 15.0
SIGNATURE_BLOCK_HEIGHT = SIGNATURE_HEIGHT + 1.0  # box + underline

BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
SCRIPT_FONT = "Times-Italic"
BODY_SIZE = 10
TEXT_COLOR = (31 / 255, 41 / 255, 55 / 255)


@dataclass(frozen=True)
class Element:
    """One drawing instruction."""

    kind: str  # "text" | "rule" | "image"
    page: int
    x: float
    y: float
    text: str = ""
    font: str = BODY_FONT
    size: float = BODY_SIZE
    x2: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Block:
    """Named vertical region: first page and offset where it starts."""

    name: str
    page: int
    top: float
    height: float


@dataclass(frozen=True)
class DocumentLayout:
    page_count: int
    blocks: tuple[Block, ...]
    elements: tuple[Element, ...] = field(repr=False)
    description_lines: tuple[str, ...] = field(repr=False)
    total_text: str
    watermark: str | None = None

    def block(self, name: str) -> Block:
        for block in self.blocks:
            if block.name == name:
                return block
        raise KeyError(name)

    def offsets(self) -> list[tuple[str, int, float]]:
        """(name, page, top) for every block, in drawing order."""
        return [(b.name, b.page, b.top) for b in self.blocks]


def output_filename(record: InvoiceRecord) -> str:
    """``signed_invoice_<number>.pdf`` once signed, ``invoice_<number>.pdf`` before."""
    prefix = "signed_invoice" if record.is_signed else "invoice"
    return f"{prefix}_{record.invoice_number}.pdf"


def has_glyphs(text: str, font_name: str) -> bool:
    """Whether ``font_name`` can draw every character of ``text``."""
    font = pdfmetrics.getFont(font_name)
    if isinstance(font, TTFont):
        return all(ord(char) in font.face.charToGlyph for char in text)
    try:
        text.encode("cp1252")
    except UnicodeEncodeError:
        return False
    return True


def display_amount(amount: Decimal, currency: str, font_name: str = BODY_FONT) -> str:
    """Amount with its symbol, or with its code when the font lacks the symbol."""
    use_code = not has_glyphs(currency_symbol(currency), font_name)
    return format_amount(amount, currency, use_code=use_code)


def _break_word(word: str, font: str, size: float, max_width: float) -> list[str]:
    pieces: list[str] = []
    current = ""
    for char in word:
        if current and stringWidth(current + char, font, size) > max_width:
            pieces.append(current)
            current = char
        else:
            current += char
    if current:
        pieces.append(current)
    return pieces


def wrap_text(text: str, font: str, size: float, max_width_mm: float) -> list[str]:
    """Word-wrap ``text`` to a width, keeping explicit line breaks.

    Words wider than the line are broken between characters.
    """
    max_width = max_width_mm * mm
    lines: list[str] = []
    for paragraph in text.splitlines():
        if not paragraph.strip():
            lines.append("")
            continue
        current = ""
        for word in paragraph.split():
            if stringWidth(word, font, size) > max_width:
                if current:
                    lines.append(current)
                *full, current = _break_word(word, font, size, max_width)
                lines.extend(full)
                continue
            candidate = f"{current} {word}" if current else word
            if current and stringWidth(candidate, font, size) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
    return lines


class _Cursor:
    """Page/offset pair that starts a new page when content would cross the bottom margin."""

    def __init__(self) -> None:
        self.page = 1
        self.y = TOP
        self.limit = PAGE_HEIGHT - BOTTOM_MARGIN

    def ensure(self, height: float, restart_at: float = TOP) -> None:
        if self.y + height > self.limit:
            self.page += 1
            self.y = restart_at


def register_ttf(path: Path | str) -> str:
    """Register a TrueType font with reportlab and return its name.

    Raises:
        ConfigurationError: If the file is missing or not a usable TrueType font
    """
    path = Path(path)
    name = f"OpenSignify-{path.stem}"
    if name in pdfmetrics.getRegisteredFontNames():
        return name
    try:
        pdfmetrics.registerFont(TTFont(name, str(path)))
    except (OSError, TTFError) as e:
        raise ConfigurationError(
            f"Cannot load PDF font {path}", setting="pdf_font_path", original_error=e
        ) from e
    logger.debug("pdf_font_registered", font=name, path=str(path))
    return name


class InvoiceComposer:
    """Render invoices at any lifecycle stage.

    Args:
        author: PDF metadata author
        font_path: TrueType font for body text (default: Helvetica)
        bold_font_path: TrueType font for headings (default: ``font_path``)

    Example:
        >>> composer = InvoiceComposer()
        >>> composer.layout(record).page_count
        1
        >>> composer.render(record, Path("out"))
        PosixPath('out/signed_invoice_INV-2026-4821.pdf')
    """

    def __init__(
        self,
        author: str = "OpenSignify",
        *,
        font_path: Path | str | None = None,
        bold_font_path: Path | str | None = None,
    ) -> None:
        self.author = author
        self.body_font = BODY_FONT
        self.bold_font = BOLD_FONT
        if font_path is not None:
            self.body_font = register_ttf(font_path)
            self.bold_font = register_ttf(bold_font_path) if bold_font_path else self.body_font
        elif bold_font_path is not None:
            self.bold_font = register_ttf(bold_font_path)

    def _text(
        self, page: int, x: float, y: float, text: str, *, bold: bool = False, size: float = BODY_SIZE
    ) -> Element:
        font = self.bold_font if bold else self.body_font
        return Element("text", page, x, y, text, font, size)

    def _width(self, text: str, *, bold: bool = False, size: float = BODY_SIZE) -> float:
        return text_width(text, self.bold_font if bold else self.body_font, size)

    def _wrap(self, text: str, width: float) -> list[str]:
        return wrap_text(text, self.body_font, BODY_SIZE, width)

    def layout(self, record: InvoiceRecord) -> DocumentLayout:
        """Place every block of ``record``. Identical input gives an identical layout."""
        elements: list[Element] = []
        blocks: list[Block] = []
        cursor = _Cursor()
        right = PAGE_WIDTH - MARGIN
        content_width = right - MARGIN

        # Title
        title = "Signed Invoice" if record.is_signed else "Invoice"
        blocks.append(Block("title", cursor.page, cursor.y, 16.0))
        elements.append(self._text(cursor.page, MARGIN, cursor.y, title, bold=True, size=18))
        cursor.y += 16

        # Number and date
        blocks.append(Block("number_date", cursor.page, cursor.y, 10.0))
        elements.append(
            self._text(cursor.page, MARGIN, cursor.y, f"Invoice #: {record.invoice_number}")
        )
        date_text = f"Date: {format_long_date(record.invoice_date)}"
        elements.append(
            self._text(cursor.page, right - self._width(date_text), cursor.y, date_text)
        )
        cursor.y += 10
        elements.append(Element("rule", cursor.page, MARGIN, cursor.y - 5, x2=right))

        # Parties, side by side; long columns continue on the next page
        column_width = PAGE_WIDTH / 2 - MARGIN - COLUMN_GAP
        sender_lines = self._wrap(record.sender_name, column_width)
        sender_lines += self._wrap(record.sender_email, column_width)
        if record.sender_address:
            sender_lines += self._wrap(record.sender_address, column_width)
        if record.sender_phone:
            sender_lines += self._wrap(record.sender_phone, column_width)
        recipient_lines = self._wrap(record.recipient_name, column_width)
        recipient_lines += self._wrap(record.recipient_email, column_width)
        rows = max(len(sender_lines), len(recipient_lines))

        blocks.append(Block("parties", cursor.page, cursor.y, rows * LINE_HEIGHT + 10))
        elements.append(self._text(cursor.page, MARGIN, cursor.y, "FROM:", bold=True))
        elements.append(self._text(cursor.page, PAGE_WIDTH / 2, cursor.y, "TO:", bold=True))
        cursor.y += LINE_HEIGHT
        for row in range(rows):
            cursor.ensure(0)
            for x, lines in ((MARGIN, sender_lines), (PAGE_WIDTH / 2, recipient_lines)):
                if row < len(lines):
                    elements.append(self._text(cursor.page, x, cursor.y, lines[row]))
            cursor.y += LINE_HEIGHT
        cursor.y += 10
        elements.append(Element("rule", cursor.page, MARGIN, cursor.y - 5, x2=right))

        # Description, continuing on new pages as needed
        description_lines = self._wrap(record.description, content_width)
        cursor.ensure(LINE_HEIGHT * 2)
        blocks.append(
            Block(
                "description",
                cursor.page,
                cursor.y,
                (len(description_lines) + 2) * LINE_HEIGHT,
            )
        )
        elements.append(self._text(cursor.page, MARGIN, cursor.y, "Description:", bold=True))
        cursor.y += LINE_HEIGHT
        for line in description_lines:
            cursor.ensure(0)
            elements.append(self._text(cursor.page, MARGIN, cursor.y, line))
            cursor.y += LINE_HEIGHT
        cursor.y += LINE_HEIGHT
        elements.append(Element("rule", cursor.page, MARGIN, cursor.y - 5, x2=right))

        # Itemized breakdown, totals right-aligned
        if record.items:
            cursor.ensure(LINE_HEIGHT * 2)
            start_page, start_y = cursor.page, cursor.y
            elements.append(
                self._text(cursor.page, MARGIN, cursor.y, "Itemized Breakdown:", bold=True)
            )
            cursor.y += LINE_HEIGHT
            line_count = 0
            for item in record.items:
                item_total = display_amount(item.total, record.currency, self.body_font)
                label_width = content_width - ITEM_INDENT - self._width(item_total) - COLUMN_GAP
                label = f"{item.description} (x{format_quantity(item.quantity)})"
                for i, line in enumerate(self._wrap(label, max(label_width, content_width / 3))):
                    cursor.ensure(0)
                    elements.append(self._text(cursor.page, MARGIN + ITEM_INDENT, cursor.y, line))
                    if i == 0:
                        elements.append(
                            self._text(
                                cursor.page, right - self._width(item_total), cursor.y, item_total
                            )
                        )
                    cursor.y += LINE_HEIGHT
                    line_count += 1
            cursor.y += LINE_HEIGHT
            blocks.append(Block("items", start_page, start_y, (line_count + 2) * LINE_HEIGHT))
            elements.append(Element("rule", cursor.page, MARGIN, cursor.y - 5, x2=right))

        # Signature block never splits across pages
        if record.is_signed and record.signature is not None and record.signed_at is not None:
            cursor.ensure(SIGNATURE_BLOCK_HEIGHT, restart_at=MARGIN)
            top = cursor.y
            box_x = right - SIGNATURE_WIDTH
            blocks.append(Block("signature", cursor.page, top, SIGNATURE_BLOCK_HEIGHT))
            elements.append(
                self._text(
                    cursor.page,
                    MARGIN,
                    top + 10,
                    f"Signed by: {record.recipient_name} on {format_long_datetime(record.signed_at)}",
                    size=8,
                )
            )
            if record.signature.is_drawn:
                elements.append(
                    Element(
                        "image",
                        cursor.page,
                        box_x,
                        top,
                        record.signature.payload,
                        width=SIGNATURE_WIDTH,
                        height=SIGNATURE_HEIGHT,
                    )
                )
            else:
                elements.append(
                    Element(
                        "text", cursor.page, box_x, top + 10, record.signature.payload, SCRIPT_FONT, 16
                    )
                )
            underline = top + SIGNATURE_HEIGHT + 1
            elements.append(
                Element("rule", cursor.page, box_x, underline, x2=box_x + SIGNATURE_WIDTH)
            )
            cursor.y += SIGNATURE_BLOCK_HEIGHT

        # Total pinned bottom-right of the final page
        total_text = f"Total: {display_amount(record.amount, record.currency, self.bold_font)}"
        total_y = PAGE_HEIGHT - TOTAL_OFFSET
        blocks.append(Block("total", cursor.page, total_y, LINE_HEIGHT))
        elements.append(
            self._text(
                cursor.page,
                right - self._width(total_text, bold=True, size=14),
                total_y,
                total_text,
                bold=True,
                size=14,
            )
        )

        return DocumentLayout(
            page_count=cursor.page,
            blocks=tuple(blocks),
            elements=tuple(elements),
            description_lines=tuple(description_lines),
            total_text=total_text,
            watermark="DRAFT" if record.status is InvoiceStatus.DRAFT else None,
        )

    def render(self, record: InvoiceRecord, output_dir: Path) -> Path:
        """Write the PDF into ``output_dir`` and return its path.

        The file is written to a temporary name and moved into place only
        when drawing succeeded.

        Raises:
            CompositionError: If any part of the document cannot be drawn
        """
        output_dir = Path(output_dir)
        output_file = output_dir / output_filename(record)
        tmp_name: str | None = None

        try:
            doc_layout = self.layout(record)
            output_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=output_dir, prefix=".", suffix=".pdf.tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name

            perf_logger = logger.bind(invoice_number=record.invoice_number)
            with LogPerformance("invoice_pdf_render", perf_logger):
                canvas = Canvas(tmp_name, pagesize=A4, invariant=1)
                canvas.setAuthor(self.author)
                canvas.setTitle(f"Invoice {record.invoice_number}")
                canvas.setSubject(f"Invoice for {record.recipient_name}")
                canvas.setCreator("OpenSignify")
                self._draw(canvas, doc_layout)
                canvas.save()

            os.replace(tmp_name, output_file)
            tmp_name = None
        except Exception as e:
            logger.error(
                "invoice_pdf_render_failed",
                invoice_number=record.invoice_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CompositionError(
                f"Could not render invoice {record.invoice_number}",
                context={"invoice_number": record.invoice_number},
                original_error=e,
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.info(
            "invoice_pdf_rendered",
            invoice_id=record.id,
            invoice_number=record.invoice_number,
            pages=doc_layout.page_count,
            output_path=str(output_file),
            file_size=output_file.stat().st_size,
        )
        return output_file

    def _draw(self, canvas: Canvas, doc_layout: DocumentLayout) -> None:
        page = 1
        self._start_page(canvas, doc_layout)
        for element in doc_layout.elements:
            while element.page > page:
                canvas.showPage()
                page += 1
                self._start_page(canvas, doc_layout)
            self._draw_element(canvas, element)
        canvas.showPage()

    def _start_page(self, canvas: Canvas, doc_layout: DocumentLayout) -> None:
        if doc_layout.watermark:
            self._draw_watermark(canvas, doc_layout.watermark)
        canvas.setFillColorRGB(*TEXT_COLOR)
        canvas.setStrokeColorRGB(*TEXT_COLOR)

    def _draw_element(self, canvas: Canvas, element: Element) -> None:
        y = A4[1] - element.y * mm
        if element.kind == "text":
            canvas.setFont(element.font, element.size)
            canvas.drawString(element.x * mm, y, element.text)
        elif element.kind == "rule":
            canvas.setLineWidth(0.2 * mm)
            canvas.line(element.x * mm, y, element.x2 * mm, y)
        elif element.kind == "image":
            image = open_payload_image(element.text)
            canvas.drawImage(
                ImageReader(image),
                element.x * mm,
                y - element.height * mm,
                width=element.width * mm,
                height=element.height * mm,
                mask="auto",
            )
        else:
            raise ValueError(f"Unknown layout element: {element.kind}")

    def _draw_watermark(self, canvas: Canvas, text: str) -> None:
        """Draw watermark text diagonally across the page."""
        canvas.saveState()
        canvas.setFont(BOLD_FONT, 80)
        canvas.setFillColorRGB(0.9, 0.9, 0.9)
        canvas.translate(A4[0] / 2, A4[1] / 2)
        canvas.rotate(45)
        canvas.drawCentredString(0, 0, text)
        canvas.restoreState()


def text_width(text: str, font: str = BODY_FONT, size: float = BODY_SIZE) -> float:
    """Rendered width of ``text`` in millimetres."""
    return stringWidth(text, font, size) / mm
