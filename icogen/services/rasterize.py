from __future__ import annotations

import io
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from icogen.core.config import settings
from icogen.services.ico_container import ICO_IMAGE_SIZES, ImageRecord

_EXTENSION_FORMATS = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".webp": "WEBP",
}

# Formats that may be stored as an icon payload without re-encoding.
PAYLOAD_FORMATS = ("PNG",)


class ResampleAlgorithm(str, Enum):
    """Pillow resampling filter used when shrinking a source to icon sizes."""

    LANCZOS = "LANCZOS"
    BICUBIC = "BICUBIC"
    BILINEAR = "BILINEAR"
    NEAREST = "NEAREST"

    @property
    def pillow_filter(self) -> Image.Resampling:
        return Image.Resampling[self.value]


def validate_source(
    content: bytes, filename: str, formats: Optional[Sequence[str]] = None
) -> str:
    """Check an upload against the size limit and the accepted formats.

    ``formats`` narrows ``settings.allowed_image_formats``; images that are
    embedded verbatim pass :data:`PAYLOAD_FORMATS`. Returns the detected
    Pillow format name.
    """

    accepted = tuple(formats or settings.allowed_image_formats)

    if len(content) > settings.max_upload_size_bytes:
        raise ValueError("Uploaded file exceeds maximum size limit")

    extension = Path(filename).suffix.lower()
    expected_format = _EXTENSION_FORMATS.get(extension)
    if extension not in settings.allowed_image_extensions or expected_format not in accepted:
        allowed = ", ".join(
            ext for ext, fmt in _EXTENSION_FORMATS.items()
            if fmt in accepted and ext in settings.allowed_image_extensions
        )
        raise ValueError(f"Unsupported file extension. Allowed: {allowed}")

    try:
        with Image.open(io.BytesIO(content)) as image:
            image.verify()
            detected_format = image.format
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Uploaded file is not a valid image") from exc

    if detected_format not in accepted:
        raise ValueError(
            f"Unsupported image format {detected_format}. Allowed: {', '.join(accepted)}"
        )
    if detected_format != expected_format:
        raise ValueError("File extension does not match detected image format")
    return detected_format


def probe_square_size(content: bytes) -> int:
    """Return the edge length of a square image."""

    try:
        with Image.open(io.BytesIO(content)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Uploaded file is not a valid image") from exc

    if width != height:
        raise ValueError(f"Icon images must be square, got {width}x{height} pixels")
    return width


def square_canvas(image: Image.Image) -> Image.Image:
    """Centre a non-square image on a transparent square canvas."""

    if image.width == image.height:
        return image

    edge = max(image.width, image.height)
    square = Image.new("RGBA", (edge, edge), (0, 0, 0, 0))
    square.paste(image, ((edge - image.width) // 2, (edge - image.height) // 2))
    return square


def render_icon_images(
    content: bytes,
    sizes: Iterable[int] = ICO_IMAGE_SIZES,
    algo: ResampleAlgorithm = ResampleAlgorithm.LANCZOS,
) -> List[ImageRecord]:
    """Rasterize ``content`` into one in-memory PNG record per requested size."""

    try:
        source = Image.open(io.BytesIO(content)).convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Invalid image data for icon generation") from exc

    source = square_canvas(source)
    records = []
    for size in sizes:
        resized = source.resize((size, size), algo.pillow_filter)
        buffer = io.BytesIO()
        resized.save(buffer, format="PNG")
        records.append(ImageRecord.from_bytes(size, buffer.getvalue()))
    return records
