import numpy as np

from watermark import AlphaMap, PixelBuffer


def gradient_image(width, height):
    """Smooth RGB gradient, fully opaque."""
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[:, :, 0] = (xs * 255 // max(width - 1, 1)).astype(np.uint8)
    pixels[:, :, 1] = (ys * 255 // max(height - 1, 1)).astype(np.uint8)
    pixels[:, :, 2] = 128
    pixels[:, :, 3] = 255
    return PixelBuffer(pixels)


def disc_reference(size, level=102):
    """Reference capture: a gray disc of brightness `level` on black."""
    ys, xs = np.mgrid[0:size, 0:size]
    center = (size - 1) / 2.0
    inside = (xs - center) ** 2 + (ys - center) ** 2 <= (size * 0.3) ** 2
    pixels = np.zeros((size, size, 4), dtype=np.uint8)
    pixels[inside, :3] = level
    pixels[:, :, 3] = 255
    return PixelBuffer(pixels)


def blend_logo(image, region, alpha_map):
    """Composite a white logo onto `image` the way Gemini does."""
    view = image.view(region)
    alpha = alpha_map.values[:, :, np.newaxis]
    blended = alpha * 255.0 + (1.0 - alpha) * view[:, :, :3].astype(float)
    view[:, :, :3] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)


def constant_alpha(width, height, value):
    return AlphaMap(width, height, np.full((height, width), value))
