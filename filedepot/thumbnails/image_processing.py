"""Utility functions for creating thumbnails of uploaded images"""

import io

from PIL import Image, UnidentifiedImageError

# Formats we write thumbnails in; anything else (e.g. ICO, TIFF variants) becomes PNG
WRITABLE_FORMATS = {"JPEG", "PNG", "GIF", "WEBP", "BMP"}


class InvalidImage(ValueError):
    pass


def create_thumbnail(image_data: bytes, width: int) -> bytes:
    """
    Scale an image to the given width, keeping the aspect ratio, and return the encoded result.
    Images narrower than width are scaled up, so every thumbnail of a size has the same width.
    """
    img = _load_image_from_bytes(image_data)
    format = img.format if img.format in WRITABLE_FORMATS else "PNG"
    height = max(1, round(img.height * width / img.width))
    resized = img.resize((width, height), Image.Resampling.LANCZOS)
    return _encode(resized, format)


def _load_image_from_bytes(image_data: bytes) -> Image.Image:
    """Loads an image from raw binary data into a PIL Image object."""
    try:
        img = Image.open(io.BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImage(f"Cannot read image: {e}") from e
    if img.width == 0 or img.height == 0:
        raise InvalidImage("Image has no pixels")
    return img


def _encode(img: Image.Image, format: str) -> bytes:
    # JPEG and BMP cannot store transparency, JPEG cannot store palettes either
    if format in ("JPEG", "BMP") and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    elif format == "GIF" and img.mode not in ("P", "L"):
        img = img.convert("P", palette=Image.Palette.ADAPTIVE)
    elif format == "WEBP" and img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    output_buffer = io.BytesIO()
    img.save(output_buffer, format=format)
    return output_buffer.getvalue()
