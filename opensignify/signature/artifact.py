"""Signature payload encoding and emptiness checks.

Drawn signatures travel as PNG data URLs (``data:image/png;base64,...``),
typed signatures as the literal trimmed name.
"""

from __future__ import annotations

import base64
import binascii
import io

from PIL import Image, ImageChops, UnidentifiedImageError

from opensignify.domain.enums import SignatureKind
from opensignify.domain.models import Signature
from opensignify.exceptions import ValidationError

PNG_DATA_URL_PREFIX = "data:image/png;base64,"


def encode_png_data_url(image: Image.Image) -> str:
    """Encode a Pillow image as a PNG data URL."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return PNG_DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_data_url(payload: str) -> bytes:
    """Return the PNG bytes of a data URL.

    Raises:
        ValueError: If the payload is not a base64 PNG data URL
    """
    if not payload.startswith(PNG_DATA_URL_PREFIX):
        raise ValueError("payload is not a PNG data URL")
    try:
        return base64.b64decode(payload[len(PNG_DATA_URL_PREFIX) :], validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("payload is not valid base64") from e


def open_payload_image(payload: str) -> Image.Image:
    """Decode a drawn payload into a loaded Pillow image.

    Raises:
        ValueError: If the payload cannot be decoded as an image
    """
    data = decode_data_url(payload)
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError("payload is not a readable image") from e
    return image


def is_blank_raster(payload: str) -> bool:
    """Whether every pixel of a drawn payload equals its background colour.

    The top-left pixel is taken as the background.
    """
    image = open_payload_image(payload).convert("RGBA")
    background = Image.new("RGBA", image.size, image.getpixel((0, 0)))
    return ImageChops.difference(image, background).getbbox() is None


def ensure_signable(
    signature: Signature | None,
    *,
    blank_baseline: str | None = None,
) -> Signature:
    """Reject null, empty or blank signature artifacts.

    Args:
        signature: Artifact to check
        blank_baseline: Blank encoding of the capture surface, when known

    Returns:
        The signature, with typed payloads trimmed

    Raises:
        ValidationError: With field ``signature`` when the artifact is unusable
    """
    if signature is None:
        raise ValidationError("A signature is required", field="signature")

    if signature.kind is SignatureKind.TYPED:
        name = signature.payload.strip()
        if not name:
            raise ValidationError("Typed signature is empty", field="signature")
        return signature if name == signature.payload else Signature(kind=signature.kind, payload=name)

    if blank_baseline is not None and signature.payload == blank_baseline:
        raise ValidationError("Drawn signature is blank", field="signature")
    try:
        blank = is_blank_raster(signature.payload)
    except ValueError as e:
        raise ValidationError(
            "Drawn signature is not a PNG image", field="signature", original_error=e
        ) from e
    if blank:
        raise ValidationError("Drawn signature is blank", field="signature")
    return signature
