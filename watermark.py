import logging
from dataclasses import dataclass, field

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

# Gemini places its logo in the bottom-right corner
LARGE_LOGO_SIZE = 96
LARGE_LOGO_MARGIN = 64
SMALL_LOGO_SIZE = 48
SMALL_LOGO_MARGIN = 32
LARGE_IMAGE_THRESHOLD = 1024

METHODS = ("remove", "inpaint", "blur", "fill")


class WatermarkError(Exception):
    pass


class AssetUnavailable(WatermarkError):
    """The reference logo capture could not be obtained or has the wrong size."""


class ImageDecodeError(WatermarkError):
    pass


@dataclass(frozen=True)
class Region:
    x: int
    y: int
    width: int
    height: int

    def clip(self, image_width, image_height):
        """
        Intersect with the image bounds.
        Returns (clipped_region, dx, dy) where dx, dy are the offsets of the
        clipped origin inside this region, or None if nothing is left.
        """
        x0 = max(self.x, 0)
        y0 = max(self.y, 0)
        x1 = min(self.x + self.width, image_width)
        y1 = min(self.y + self.height, image_height)
        if x1 <= x0 or y1 <= y0:
            return None
        return Region(x0, y0, x1 - x0, y1 - y0), x0 - self.x, y0 - self.y


class PixelBuffer:
    """RGBA pixels as a (height, width, 4) uint8 array, row-major."""

    def __init__(self, pixels):
        pixels = np.asarray(pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"expected (height, width, 4) pixels, got shape {pixels.shape}")
        self.pixels = np.ascontiguousarray(pixels, dtype=np.uint8)

    @classmethod
    def from_bytes(cls, data, width, height):
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
        if flat.size != width * height * 4:
            raise ValueError(f"buffer holds {flat.size} bytes, expected {width * height * 4}")
        return cls(flat.reshape(height, width, 4).copy())

    @classmethod
    def from_image(cls, img):
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return cls(np.array(img))

    @classmethod
    def blank(cls, width, height, color=(0, 0, 0, 255)):
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = color
        return cls(pixels)

    @property
    def width(self):
        return self.pixels.shape[1]

    @property
    def height(self):
        return self.pixels.shape[0]

    def tobytes(self):
        return self.pixels.tobytes()

    def to_image(self):
        return Image.fromarray(self.pixels, "RGBA")

    def copy(self):
        return PixelBuffer(self.pixels.copy())

    def view(self, region):
        """Writable view of an in-bounds region."""
        return self.pixels[region.y:region.y + region.height, region.x:region.x + region.width]

    def __repr__(self):
        return f"PixelBuffer({self.width}x{self.height})"


@dataclass(frozen=True)
class AlphaMap:
    width: int
    height: int
    values: np.ndarray = field(repr=False)

    def __post_init__(self):
        values = np.asarray(self.values, dtype=np.float64).reshape(self.height, self.width)
        values = np.clip(values, 0.0, 1.0)
        values.setflags(write=False)
        object.__setattr__(self, "values", values)


def parse_color(value):
    """Accepts '#rrggbb', 'rrggbb' or an (r, g, b) sequence."""
    if isinstance(value, str):
        hex_value = value.strip().lstrip("#")
        if len(hex_value) == 3:
            hex_value = "".join(c * 2 for c in hex_value)
        if len(hex_value) != 6:
            raise ValueError(f"invalid color: {value!r}")
        try:
            return tuple(int(hex_value[i:i + 2], 16) for i in (0, 2, 4))
        except ValueError:
            raise ValueError(f"invalid color: {value!r}") from None
    rgb = tuple(int(c) for c in value)
    if len(rgb) != 3 or not all(0 <= c <= 255 for c in rgb):
        raise ValueError(f"invalid color: {value!r}")
    return rgb


@dataclass
class Settings:
    method: str = "remove"
    blur_radius: int = 20
    cover_color: tuple = (0, 0, 0)
    opacity: float = 1.0

    def __post_init__(self):
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got {self.method!r}")
        if int(self.blur_radius) < 1:
            raise ValueError(f"blur_radius must be positive, got {self.blur_radius}")
        self.blur_radius = int(self.blur_radius)
        if not 0.0 < self.opacity <= 1.0:
            raise ValueError(f"opacity must be in (0, 1], got {self.opacity}")
        self.cover_color = parse_color(self.cover_color)


def locate(image_width, image_height):
    # Size is 96x96 for images > 1024x1024, otherwise 48x48
    if image_width > LARGE_IMAGE_THRESHOLD and image_height > LARGE_IMAGE_THRESHOLD:
        size, margin = LARGE_LOGO_SIZE, LARGE_LOGO_MARGIN
    else:
        size, margin = SMALL_LOGO_SIZE, SMALL_LOGO_MARGIN

    region = Region(image_width - margin - size, image_height - margin - size, size, size)
    if region.x < 0 or region.y < 0:
        logger.warning("Image %dx%d is smaller than the watermark area; region %s is partly outside",
                       image_width, image_height, region)
    return region
