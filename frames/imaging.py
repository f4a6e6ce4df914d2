import io

from PIL import Image

from .constants import THUMBNAIL_WIDTH
from .errors import ValidationError


def inspect_picture(data):
    """Decode ``data`` and return ``(format, width, height)``.

    Raises ValidationError when the bytes are not an image Pillow can read.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise ValidationError("picture must be bytes")
    data = bytes(data)
    if not data:
        raise ValidationError("picture is empty")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        # verify() leaves the image unusable; reopen to read the size.
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.format, img.size[0], img.size[1]
    except Exception as exc:
        raise ValidationError(f"picture is not a decodable image: {exc}") from exc


def make_thumbnail_png(data, target_width=THUMBNAIL_WIDTH):
    with Image.open(io.BytesIO(bytes(data))) as src:
        img = src.convert("RGBA") if src.mode in ("RGBA", "LA", "P") else src.convert("RGB")

    w, h = img.size
    if w <= 0 or h <= 0:
        raise ValidationError("invalid image size")

    # Never upscale.
    if w > target_width:
        new_h = max(1, int(round(h * (target_width / float(w)))))
        img = img.resize((target_width, new_h), Image.Resampling.LANCZOS)

    out = io.BytesIO()
    img.save(out, format="PNG", optimize=True)
    return out.getvalue(), img.size[0], img.size[1]
