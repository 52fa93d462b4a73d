from __future__ import annotations

from io import BytesIO

from PIL import Image

WEBP_QUALITY = 80


def convert_to_webp(data: bytes, quality: int = WEBP_QUALITY) -> bytes:
    """Re-encode PNG/JPEG bytes as lossy WebP, keeping alpha when present."""
    with Image.open(BytesIO(data)) as img:
        img.load()
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")
        buf = BytesIO()
        img.save(buf, format="WEBP", quality=quality, method=4, lossless=False)
        return buf.getvalue()
