"""Signature capture surface.

The surface records pointer strokes and rasterizes them with Pillow. Input
events and the emptiness decision are decoupled: callers feed
``begin_stroke``/``extend_stroke``/``end_stroke`` and pull the latest
``CaptureState`` whenever they need it. Nothing is ever submitted
automatically.

Emptiness is decided as ``no strokes recorded OR encoding == baseline``. The
baseline is the encoding of the freshly painted background for the current
pixel geometry, so it is recomputed whenever pixel density is established.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from PIL import Image, ImageDraw

from opensignify.domain.enums import SignatureKind
from opensignify.domain.models import Signature
from opensignify.exceptions import ValidationError
from opensignify.utils.logging import get_logger

from .artifact import encode_png_data_url

logger = get_logger(__name__)

Point = tuple[float, float]

BACKGROUND_COLOR = (255, 255, 255)
PEN_COLOR = (31, 41, 55)


@dataclass(frozen=True)
class CaptureState:
    """Latest capture result: the payload (None when empty) and the emptiness flag."""

    payload: str | None
    is_empty: bool
    kind: SignatureKind = SignatureKind.DRAWN

    def to_signature(self) -> Signature:
        """Build the signature artifact.

        Raises:
            ValidationError: If nothing was captured
        """
        if self.is_empty or not self.payload:
            raise ValidationError("Nothing has been captured", field="signature")
        return Signature(kind=self.kind, payload=self.payload)


EMPTY_STATE = CaptureState(payload=None, is_empty=True)


class CaptureSurface:
    """Freehand drawing surface backed by a Pillow raster.

    Coordinates are logical (CSS) pixels; the raster is scaled by the device
    pixel ratio.

    Example:
        >>> surface = CaptureSurface(width=600, height=200)
        >>> surface.begin_stroke(10, 10)
        >>> surface.extend_stroke(120, 80)
        >>> state = surface.end_stroke()
        >>> state.is_empty
        False
    """

    def __init__(
        self,
        width: int = 600,
        height: int = 200,
        device_pixel_ratio: float = 1.0,
        *,
        pen_width: float = 2.0,
        min_distance: float = 5.0,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("Surface dimensions must be positive")
        self.pen_width = pen_width
        self.min_distance = min_distance
        self._strokes: list[list[Point]] = []
        self._current: list[Point] | None = None
        self._establish_density(width, height, device_pixel_ratio)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def ratio(self) -> float:
        return self._ratio

    @property
    def baseline(self) -> str:
        """Encoding of this surface with nothing drawn on it."""
        return self._baseline

    def _establish_density(self, width: int, height: int, device_pixel_ratio: float) -> None:
        self._width = width
        self._height = height
        self._ratio = max(device_pixel_ratio or 1.0, 1.0)
        size = (round(width * self._ratio), round(height * self._ratio))
        self._image = Image.new("RGB", size, BACKGROUND_COLOR)
        self._draw = ImageDraw.Draw(self._image)
        self._baseline = encode_png_data_url(self._image)

    def resize(self, width: int, height: int, device_pixel_ratio: float = 1.0) -> CaptureState:
        """Re-establish pixel density for a new size and replay the drawing.

        An in-progress stroke is kept as a finished one.
        """
        if width <= 0 or height <= 0:
            raise ValueError("Surface dimensions must be positive")
        if self._current:
            self._strokes.append(self._current)
        self._current = None

        self._establish_density(width, height, device_pixel_ratio)
        for stroke in self._strokes:
            self._paint_stroke(stroke)

        logger.debug(
            "capture_surface_resized",
            width=width,
            height=height,
            ratio=self._ratio,
            strokes=len(self._strokes),
        )
        return self.current_state()

    # ------------------------------------------------------------------
    # Strokes
    # ------------------------------------------------------------------

    def begin_stroke(self, x: float, y: float) -> None:
        """Start a stroke at (x, y); a lone point renders as a dot."""
        if self._current:
            self._strokes.append(self._current)
        self._current = [(x, y)]
        self._paint_dot((x, y))

    def extend_stroke(self, x: float, y: float) -> None:
        """Add a point to the current stroke. Ignored when no stroke is active."""
        if self._current is None:
            return
        last = self._current[-1]
        if math.dist(last, (x, y)) < self.min_distance:
            return
        self._current.append((x, y))
        self._paint_segment(last, (x, y))

    def end_stroke(self) -> CaptureState:
        """Finish the current stroke and report the resulting state."""
        if self._current:
            self._strokes.append(self._current)
        self._current = None
        return self.current_state()

    def clear(self) -> CaptureState:
        """Reset the raster to the blank baseline."""
        self._strokes = []
        self._current = None
        self._image.paste(BACKGROUND_COLOR, (0, 0, *self._image.size))
        return EMPTY_STATE

    def current_state(self) -> CaptureState:
        """Pull the latest (payload, is_empty) pair."""
        raw_empty = not self._strokes and not self._current
        if raw_empty:
            return EMPTY_STATE
        encoding = encode_png_data_url(self._image)
        if encoding == self._baseline:
            return EMPTY_STATE
        return CaptureState(payload=encoding, is_empty=False)

    def to_data(self) -> list[list[Point]]:
        """Recorded strokes, in logical coordinates."""
        strokes = [list(stroke) for stroke in self._strokes]
        if self._current:
            strokes.append(list(self._current))
        return strokes

    @classmethod
    def from_strokes(
        cls,
        strokes: Iterable[Sequence[Sequence[float]]],
        width: int = 600,
        height: int = 200,
        device_pixel_ratio: float = 1.0,
        **kwargs: float,
    ) -> CaptureSurface:
        """Rebuild a surface by replaying serialized strokes (``[[x, y], ...]`` lists)."""
        surface = cls(width, height, device_pixel_ratio, **kwargs)
        for stroke in strokes:
            points = [(float(p[0]), float(p[1])) for p in stroke]
            if not points:
                continue
            surface.begin_stroke(*points[0])
            for point in points[1:]:
                surface.extend_stroke(*point)
            surface.end_stroke()
        return surface

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    def _scaled(self, point: Point) -> Point:
        return (point[0] * self._ratio, point[1] * self._ratio)

    def _paint_dot(self, point: Point) -> None:
        x, y = self._scaled(point)
        radius = self.pen_width * self._ratio / 2
        self._draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=PEN_COLOR)

    def _paint_segment(self, start: Point, end: Point) -> None:
        width = max(1, round(self.pen_width * self._ratio))
        self._draw.line([self._scaled(start), self._scaled(end)], fill=PEN_COLOR, width=width)
        self._paint_dot(end)

    def _paint_stroke(self, stroke: Sequence[Point]) -> None:
        self._paint_dot(stroke[0])
        for start, end in zip(stroke, stroke[1:]):
            self._paint_segment(start, end)


def typed_signature(text: str | None) -> CaptureState:
    """Capture state for a typed name: the trimmed text, empty when only whitespace."""
    name = (text or "").strip()
    if not name:
        return CaptureState(payload=None, is_empty=True, kind=SignatureKind.TYPED)
    return CaptureState(payload=name, is_empty=False, kind=SignatureKind.TYPED)
