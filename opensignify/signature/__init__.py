"""Signature capture and artifact checks."""

from .artifact import (
    PNG_DATA_URL_PREFIX,
    decode_data_url,
    encode_png_data_url,
    ensure_signable,
    is_blank_raster,
    open_payload_image,
)
from .capture import BACKGROUND_COLOR, PEN_COLOR, CaptureState, CaptureSurface, typed_signature

__all__ = [
    "BACKGROUND_COLOR",
    "PEN_COLOR",
    "PNG_DATA_URL_PREFIX",
    "CaptureState",
    "CaptureSurface",
    "decode_data_url",
    "encode_png_data_url",
    "ensure_signable",
    "is_blank_raster",
    "open_payload_image",
    "typed_signature",
]
