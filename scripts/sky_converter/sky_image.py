"""
sky_image.py
============

Image side of the OptiFine -> FabricSkyboxes sky conversion.

* ``rgb_to_hsv`` / ``hsv_to_rgb``: colour conversion in the 0-100 HSV scale used
  by the chroma key. Both accept scalars or numpy arrays.
* ``apply_transparency``: turns every fully opaque pixel into a pixel whose alpha
  is its brightness and whose colour is pushed to full value, so black becomes
  transparent.
* ``slice_cubemap``: splits one packed 3x2 cubemap into the six face images.
* ``decode_png`` / ``encode_png``: Pillow based codec for ``RasterImage``.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from sky_types import FACE_ORDER, ConversionConfig, DecodeError, EncodeError

EPSILON = float(np.finfo(np.float64).eps)

CUBEMAP_COLUMNS = 3
CUBEMAP_ROWS = 2

# Faces not listed here are emitted as extracted.
FACE_ROTATIONS: Dict[str, str] = {
    "bottom": "counterclockwise",
    "top": "clockwise",
}

PLACEHOLDER_RGBA: Tuple[int, int, int, int] = (0, 0, 0, 255)


@dataclass(frozen=True, eq=False)
class RasterImage:
    """RGBA8 image, row-major, top row first.

    ``pixels`` has shape ``(height, width, 4)`` and dtype ``uint8``.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.dtype != np.uint8 or self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(
                f"RasterImage expects a (height, width, 4) uint8 array, got "
                f"{self.pixels.shape} {self.pixels.dtype}"
            )

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def filled(cls, width: int, height: int, rgba: Tuple[int, int, int, int]) -> "RasterImage":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = rgba
        return cls(pixels)


def _close(first, second):
    return np.abs(first - second) < EPSILON


def _unwrap(value):
    if np.ndim(value) == 0:
        return float(value)
    return value


def rgb_to_hsv(red, green, blue):
    """Convert 0-255 RGB to (hue 0-360, saturation 0-100, value 0-100)."""
    r = np.asarray(red, dtype=np.float64) * 20 / 51
    g = np.asarray(green, dtype=np.float64) * 20 / 51
    b = np.asarray(blue, dtype=np.float64) * 20 / 51

    maximum = np.maximum(np.maximum(r, g), b)
    delta = maximum - np.minimum(np.minimum(r, g), b)

    # Every branch is evaluated; the grey case masks out the division by zero.
    with np.errstate(divide="ignore", invalid="ignore"):
        hue = np.select(
            [_close(delta, 0.0), _close(maximum, r), _close(maximum, g)],
            [
                np.zeros_like(delta),
                np.fmod(60 * ((g - b) / delta) + 360, 360),
                np.fmod(60 * ((b - r) / delta) + 120, 360),
            ],
            default=np.fmod(60 * ((r - g) / delta) + 240, 360),
        )
        saturation = np.where(_close(maximum, 0.0), 0.0, delta / maximum * 100)

    return _unwrap(hue), _unwrap(saturation), _unwrap(maximum)


def hsv_to_rgb(hue, saturation, value):
    """Convert (hue 0-360, saturation 0-100, value 0-100) back to 0-255 RGB."""
    h = np.asarray(hue, dtype=np.float64)
    s = np.asarray(saturation, dtype=np.float64)
    v = np.asarray(value, dtype=np.float64)
    h, s, v = np.broadcast_arrays(h, s, v)

    chroma = s * v / 10000
    x = chroma * (1 - np.abs(np.fmod(h / 60, 2) - 1))
    m = v / 100 - chroma

    # Hues below 0 fall into the first sector and hues of 360 or more into the last.
    sector = np.clip(np.floor(h / 60), 0, 5).astype(np.intp)
    high = chroma + m
    mid = x + m

    red = np.choose(sector, [high, mid, m, m, mid, high])
    green = np.choose(sector, [mid, high, high, mid, m, m])
    blue = np.choose(sector, [m, m, mid, high, high, mid])

    return _unwrap(red * 255), _unwrap(green * 255), _unwrap(blue * 255)


def _to_channel(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def apply_transparency(image: RasterImage, config: ConversionConfig) -> RasterImage:
    """Re-express fully opaque pixels as brightness-keyed alpha at full value.

    Pixels whose alpha is below 255 are copied untouched. Returns ``image``
    itself when the transparency switch is off.
    """
    if not config.transparent:
        return image

    opaque = image.pixels[..., 3] == 255
    if not opaque.any():
        return image

    source = image.pixels[opaque].astype(np.float64)
    hue, saturation, value = rgb_to_hsv(source[:, 0], source[:, 1], source[:, 2])
    alpha = np.asarray(value) * 51 / 20
    red, green, blue = hsv_to_rgb(hue, saturation, 100.0)

    pixels = image.pixels.copy()
    pixels[opaque] = np.stack(
        [_to_channel(red), _to_channel(green), _to_channel(blue), _to_channel(alpha)],
        axis=-1,
    )
    return RasterImage(pixels)


def rotate_clockwise(image: RasterImage) -> RasterImage:
    """Rotate 90 degrees clockwise: source (x, y) lands on (height-1-y, x)."""
    return RasterImage(np.ascontiguousarray(np.rot90(image.pixels, k=-1)))


def rotate_counterclockwise(image: RasterImage) -> RasterImage:
    """Rotate 90 degrees counter-clockwise: source (x, y) lands on (y, width-1-x)."""
    return RasterImage(np.ascontiguousarray(np.rot90(image.pixels, k=1)))


_ROTATORS = {
    "clockwise": rotate_clockwise,
    "counterclockwise": rotate_counterclockwise,
}


def slice_cubemap(image: RasterImage, config: ConversionConfig, label: str = "") -> Dict[str, RasterImage]:
    """Split a packed 3x2 cubemap into its six faces.

    The top row holds bottom, top, south and the bottom row holds west, north,
    east. Each tile passes through ``apply_transparency`` before its face
    rotation. Dimensions that are not multiples of 3x2 are cropped.
    """
    tile_width = image.width // CUBEMAP_COLUMNS
    tile_height = image.height // CUBEMAP_ROWS
    if tile_width == 0 or tile_height == 0:
        raise DecodeError(
            f"image {label or '<memory>'} is {image.width}x{image.height}; "
            "too small for a 3x2 cubemap"
        )

    if image.width % CUBEMAP_COLUMNS or image.height % CUBEMAP_ROWS:
        logging.warning(
            "Wrong cubemap dimensions %dx%d for %s; cropping to %dx%d.",
            image.width,
            image.height,
            label or "<memory>",
            tile_width * CUBEMAP_COLUMNS,
            tile_height * CUBEMAP_ROWS,
        )

    faces: Dict[str, RasterImage] = {}
    for index, face in enumerate(FACE_ORDER):
        row, column = divmod(index, CUBEMAP_COLUMNS)
        top = row * tile_height
        left = column * tile_width
        tile = RasterImage(image.pixels[top:top + tile_height, left:left + tile_width].copy())
        tile = apply_transparency(tile, config)
        rotation = FACE_ROTATIONS.get(face)
        if rotation is not None:
            tile = _ROTATORS[rotation](tile)
        faces[face] = tile
    return faces


def placeholder_faces() -> Dict[str, RasterImage]:
    """Six 1x1 opaque black faces for skies whose source image is missing."""
    return {face: RasterImage.filled(1, 1, PLACEHOLDER_RGBA) for face in FACE_ORDER}


def decode_png(data: bytes) -> RasterImage:
    stream = io.BytesIO(data)
    try:
        with Image.open(stream) as image:
            image.load()
            rgba = image.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError(f"unsupported or corrupted image payload: {exc}") from exc
    return RasterImage(np.array(rgba, dtype=np.uint8))


def encode_png(image: RasterImage) -> bytes:
    stream = io.BytesIO()
    try:
        Image.fromarray(image.pixels).save(stream, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeError(f"failed to encode {image.width}x{image.height} PNG: {exc}") from exc
    return stream.getvalue()
