from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageColor, ImageDraw, ImageFont

from media_tools.models.job_contract import WatermarkConfig

WATERMARK_MARGIN = 20

IMAGE_MEDIA_TYPES = {
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "png": "image/png",
}

_PIL_FORMATS = {"jpeg": "JPEG", "webp": "WEBP", "bmp": "BMP", "png": "PNG"}
_ALIASES = {"jpg": "jpeg"}
_MODES_BY_FORMAT = {
    "jpeg": {"RGB", "L"},
    "bmp": {"RGB", "L", "P", "1"},
    "webp": {"RGB", "RGBA"},
    "png": {"RGB", "RGBA", "L", "LA", "P", "1", "I", "I;16"},
}


def normalize_image_format(raw: str | None) -> str:
    """Map a requested format onto the supported table, falling back to png."""
    key = (raw or "").strip().lower()
    key = _ALIASES.get(key, key)
    return key if key in IMAGE_MEDIA_TYPES else "png"


def image_media_type(fmt: str | None) -> str:
    return IMAGE_MEDIA_TYPES[normalize_image_format(fmt)]


def watermark_position(
    width: float,
    height: float,
    text_width: float,
    font_size: float,
    position: str,
    margin: float = WATERMARK_MARGIN,
) -> tuple[float, float]:
    """Left-baseline anchor for watermark text inside a ``width`` x ``height`` image."""
    if position == "top-left":
        return margin, margin + font_size
    if position == "top-right":
        return width - text_width - margin, margin + font_size
    if position == "bottom-left":
        return margin, height - margin
    if position == "bottom-right":
        return width - text_width - margin, height - margin
    if position == "center":
        return (width - text_width) / 2, (height + font_size) / 2
    raise ValueError(f"Unknown watermark position: {position}")


def parse_color(raw: str | None, default: tuple[int, int, int] = (0, 0, 0)) -> tuple[int, int, int]:
    if not raw:
        return default
    try:
        rgb = ImageColor.getrgb(raw.strip())
    except ValueError:
        return default
    return rgb[0], rgb[1], rgb[2]


def convert_image(source: Path, output: Path, fmt: str) -> None:
    fmt = normalize_image_format(fmt)
    with Image.open(source) as image:
        image.load()
        _save(image, output, fmt)


def resize_image(source: Path, output: Path, width: int, height: int, fmt: str) -> None:
    fmt = normalize_image_format(fmt)
    with Image.open(source) as image:
        resized = image.resize((width, height), Image.Resampling.LANCZOS)
        _save(resized, output, fmt)


def watermark_image(source: Path, output: Path, config: WatermarkConfig) -> None:
    with Image.open(source) as image:
        base = image.convert("RGBA")

    font = _load_font(config.font_size)
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    text_width = draw.textlength(config.text, font=font)
    x, y = watermark_position(base.width, base.height, text_width, config.font_size, config.position)

    fill = (*config.color, round(255 * config.opacity))
    if isinstance(font, ImageFont.FreeTypeFont):
        draw.text((x, y), config.text, font=font, fill=fill, anchor="ls")
    else:
        draw.text((x, y - config.font_size), config.text, font=font, fill=fill)

    Image.alpha_composite(base, overlay).save(output, format="PNG")


def _save(image: Image.Image, output: Path, fmt: str) -> None:
    if image.mode not in _MODES_BY_FORMAT[fmt]:
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        target = "RGBA" if has_alpha and "RGBA" in _MODES_BY_FORMAT[fmt] else "RGB"
        image = image.convert(target)
    image.save(output, format=_PIL_FORMATS[fmt])


def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for candidate in (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    ):
        if Path(candidate).exists():
            return ImageFont.truetype(candidate, size=size)
    return ImageFont.load_default(size=size)
