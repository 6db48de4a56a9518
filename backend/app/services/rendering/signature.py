"""
Signature capture.

Signatures are stored on the form as PNG data URLs. Three capture modes
produce them:
- draw: freehand strokes rasterized onto a transparent canvas
- type: the typed name drawn in a slanted script style
- upload: an uploaded image with its light paper background made transparent
"""
import base64
import binascii
import logging
from enum import Enum
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from app.config import Config

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = 'data:image/png;base64,'

# Upload background removal thresholds (per RGB channel)
WHITE_THRESHOLD = 240
NEAR_WHITE_THRESHOLD = 200
NEAR_WHITE_ALPHA_REDUCTION = 100

# Script faces tried in order after SIGNATURE_FONT_PATH; Pillow also searches the system font dirs
SCRIPT_FONTS = (
    'DancingScript-Regular.ttf',
    'GreatVibes-Regular.ttf',
    'Pacifico-Regular.ttf',
    'Z003-MediumItalic.otf',
    'URWChanceryL-MediItal.ttf',
)


class SignatureMode(str, Enum):
    """How a signature is captured."""
    DRAW = "draw"
    TYPE = "type"
    UPLOAD = "upload"


class SignatureRenderState(str, Enum):
    """What a signature widget shows."""
    PROMPT = "prompt"   # nothing captured yet
    CANVAS = "canvas"   # drawing surface
    IMAGE = "image"     # captured signature


class SignatureError(ValueError):
    """The supplied signature data cannot be decoded."""


def is_signature_image(value) -> bool:
    return isinstance(value, str) and value.startswith('data:image')


def to_data_url(png_bytes: bytes) -> str:
    return DATA_URL_PREFIX + base64.b64encode(png_bytes).decode('utf-8')


def decode_data_url(data_url: str) -> bytes:
    """
    Decode an image data URL to raw bytes.

    Raises:
        SignatureError: if the value is not a base64 image data URL
    """
    if not is_signature_image(data_url) or ',' not in data_url:
        raise SignatureError("Signature is not an image data URL")
    header, payload = data_url.split(',', 1)
    if ';base64' not in header:
        raise SignatureError("Signature data URL is not base64 encoded")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureError(f"Invalid base64 signature payload: {e}") from e


def _png_bytes(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def remove_background(image_bytes: bytes) -> bytes:
    """
    Make the light background of an uploaded signature transparent.

    Pixels whose RGB channels all exceed 240 become fully transparent;
    pixels above 200 lose 100 points of alpha.

    Args:
        image_bytes: Uploaded image in any format Pillow can read

    Returns:
        PNG bytes with an alpha channel
    """
    try:
        image = Image.open(BytesIO(image_bytes)).convert('RGBA')
    except (OSError, ValueError) as e:
        raise SignatureError(f"Cannot read uploaded signature image: {e}") from e

    pixels = np.array(image, dtype=np.int16)
    rgb = pixels[:, :, :3]
    alpha = pixels[:, :, 3]

    white = np.all(rgb > WHITE_THRESHOLD, axis=2)
    near_white = np.all(rgb > NEAR_WHITE_THRESHOLD, axis=2) & ~white

    alpha[white] = 0
    alpha[near_white] = np.maximum(alpha[near_white] - NEAR_WHITE_ALPHA_REDUCTION, 0)
    pixels[:, :, 3] = alpha

    result = Image.fromarray(pixels.astype(np.uint8))
    logger.info(
        f"Removed signature background: {int(white.sum())} transparent, "
        f"{int(near_white.sum())} faded pixels"
    )
    return _png_bytes(result)


def load_signature_font(font_size: int):
    """
    Load a script font for typed signatures.

    Returns:
        Tuple of (font, is_script); falls back to Pillow's default face
    """
    candidates = [Config.SIGNATURE_FONT_PATH] if Config.SIGNATURE_FONT_PATH else []
    for name in candidates + list(SCRIPT_FONTS):
        try:
            return ImageFont.truetype(name, font_size), True
        except OSError:
            continue
    logger.debug("No script font available; typed signatures use the default font")
    return ImageFont.load_default(size=font_size), False


def render_typed_signature(text: str, width: int = 500, height: int = 150, font_size: int = 48) -> bytes:
    """
    Draw a typed name as a slanted script signature, centered on a transparent canvas.

    Returns:
        PNG bytes
    """
    text = (text or '').strip()
    if not text:
        raise SignatureError("Typed signature is empty")

    font, is_script = load_signature_font(font_size)
    canvas = Image.new('RGBA', (width, height), (255, 255, 255, 0))
    draw = ImageDraw.Draw(canvas)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (width - (right - left)) / 2 - left
    y = (height - (bottom - top)) / 2 - top
    draw.text((x, y), text, font=font, fill=(0, 0, 0, 255))
    if is_script:
        return _png_bytes(canvas)

    # shear the plain fallback face to the right for an italic look
    shear = 0.25
    slanted = canvas.transform(
        canvas.size,
        Image.Transform.AFFINE,
        (1, shear, -shear * height / 2, 0, 1, 0),
        resample=Image.Resampling.BICUBIC,
    )
    return _png_bytes(slanted)


def render_drawn_signature(
    strokes: Sequence[Sequence[Tuple[float, float]]],
    width: int = 500,
    height: int = 150,
    line_width: int = 2,
) -> bytes:
    """
    Rasterize freehand strokes.

    Args:
        strokes: Each stroke is a list of (x, y) canvas points
        width: Canvas width in pixels
        height: Canvas height in pixels
        line_width: Pen width in pixels

    Returns:
        PNG bytes
    """
    drawn = [list(stroke) for stroke in strokes if stroke]
    if not drawn:
        raise SignatureError("Drawn signature has no strokes")

    canvas = Image.new('RGBA', (width, height), (255, 255, 255, 0))
    draw = ImageDraw.Draw(canvas)
    for stroke in drawn:
        points: List[Tuple[float, float]] = [(float(x), float(y)) for x, y in stroke]
        if len(points) == 1:
            x, y = points[0]
            r = line_width / 2
            draw.ellipse((x - r, y - r, x + r, y + r), fill=(0, 0, 0, 255))
        else:
            draw.line(points, fill=(0, 0, 0, 255), width=line_width, joint='curve')
    return _png_bytes(canvas)


def capture_signature(
    mode: SignatureMode,
    text: Optional[str] = None,
    strokes: Optional[Sequence[Sequence[Tuple[float, float]]]] = None,
    image_bytes: Optional[bytes] = None,
) -> str:
    """
    Produce the stored data URL for a captured signature.

    Raises:
        SignatureError: if the input for the chosen mode is missing or unreadable
    """
    mode = SignatureMode(mode)
    if mode == SignatureMode.TYPE:
        png = render_typed_signature(text or '')
    elif mode == SignatureMode.DRAW:
        png = render_drawn_signature(strokes or [])
    else:
        if not image_bytes:
            raise SignatureError("No signature image uploaded")
        png = remove_background(image_bytes)
    return to_data_url(png)


def signature_render_state(mode: Optional[SignatureMode], value) -> SignatureRenderState:
    """Captured image wins; otherwise draw mode shows the canvas and the rest show a prompt."""
    if is_signature_image(value):
        return SignatureRenderState.IMAGE
    if mode == SignatureMode.DRAW:
        return SignatureRenderState.CANVAS
    return SignatureRenderState.PROMPT
