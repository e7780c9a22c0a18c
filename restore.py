import logging

import numpy as np

from filters import box_blur
from watermark import Region

logger = logging.getLogger(__name__)

# Reverse alpha blending
ALPHA_THRESHOLD = 0.002
MAX_ALPHA = 0.99
LOGO_VALUE = 255.0  # Gemini logo is white (255, 255, 255)

# Neighbor sampling
MASK_THRESHOLD = 0.05
SEARCH_PADDING = 8
TARGET_WEIGHT = 8.0
SMOOTH_RADIUS = 3
SMOOTH_PASSES = 2

# Border sampling
BORDER_MIN = 10
BORDER_RATIO = 0.2
BORDER_STEP = 2
NOISE_AMPLITUDE = 12.0
INPAINT_BLUR_RADIUS = 5
INPAINT_BLUR_PASSES = 2


def _check_alpha_map(region, alpha_map):
    if (alpha_map.width, alpha_map.height) != (region.width, region.height):
        raise ValueError(
            f"alpha map is {alpha_map.width}x{alpha_map.height}, region is {region.width}x{region.height}")


def reverse_blend(image, region, alpha_map):
    """
    Undo `observed = alpha * 255 + (1 - alpha) * original` over `region`.

    Math: original = (observed - alpha * 255) / (1 - alpha)

    Alpha is capped at MAX_ALPHA, so where the logo was close to fully
    opaque the result is an estimate rather than an exact recovery.
    """
    _check_alpha_map(region, alpha_map)
    clipped = region.clip(image.width, image.height)
    if clipped is None:
        return
    inside, dx, dy = clipped

    alpha = alpha_map.values[dy:dy + inside.height, dx:dx + inside.width]
    active = alpha >= ALPHA_THRESHOLD
    alpha_expanded = np.minimum(alpha, MAX_ALPHA)[:, :, np.newaxis]

    patch = image.view(inside)
    patch_rgb = patch[:, :, :3].astype(float)

    numerator = patch_rgb - (LOGO_VALUE * alpha_expanded)
    denominator = 1.0 - alpha_expanded
    restored_rgb = np.clip(np.rint(numerator / denominator), 0, 255).astype(np.uint8)

    patch[:, :, :3] = np.where(active[:, :, np.newaxis], restored_rgb, patch[:, :, :3])
    logger.debug("Reverse blend %s: %d of %d pixels restored", inside, int(active.sum()), active.size)


def _ring_offsets(radius):
    """
    Offsets whose distance is within radius +- 1, visited on a grid whose
    stride grows with the radius.
    """
    step = max(1, radius // 2)
    offsets = []
    for dy in range(-radius, radius + 1, step):
        for dx in range(-radius, radius + 1, step):
            if dx == 0 and dy == 0:
                continue
            dist = np.hypot(dx, dy)
            if radius - 1 <= dist <= radius + 1:
                offsets.append((dx, dy, 1.0 / (dist * dist)))
    return offsets


def neighbor_fill(image, region, alpha_map, smooth=True):
    """
    Rebuild every pixel the alpha map marks as watermark from a
    distance-weighted average of nearby pixels that are not watermark.

    Each masked pixel searches outward ring by ring until the collected
    weight reaches TARGET_WEIGHT. Only unmasked pixels are ever sampled, so
    the logo color cannot leak back in. A short box blur over the region
    hides the seams.
    """
    _check_alpha_map(region, alpha_map)
    if region.clip(image.width, image.height) is None:
        return

    mask = alpha_map.values > MASK_THRESHOLD
    max_radius = max(region.width, region.height) + SEARCH_PADDING

    # Work in a window big enough for the widest ring around the region
    pad = max_radius
    window = Region(region.x - pad, region.y - pad, region.width + 2 * pad, region.height + 2 * pad)
    usable = np.zeros((window.height, window.width), dtype=bool)
    colors = np.zeros((window.height, window.width, 3), dtype=np.float64)

    inside, ox, oy = window.clip(image.width, image.height)
    usable[oy:oy + inside.height, ox:ox + inside.width] = True
    colors[oy:oy + inside.height, ox:ox + inside.width] = image.view(inside)[:, :, :3]

    region_usable = usable[pad:pad + region.height, pad:pad + region.width]
    targets_mask = mask & region_usable
    region_usable &= ~mask

    ys, xs = np.nonzero(targets_mask)
    if ys.size == 0:
        logger.debug("Neighbor fill %s: nothing masked", region)
        return
    ty = ys + pad
    tx = xs + pad

    acc = np.zeros((ys.size, 3), dtype=np.float64)
    weight = np.zeros(ys.size, dtype=np.float64)
    searching = np.ones(ys.size, dtype=bool)

    for radius in range(1, max_radius + 1):
        idx = np.nonzero(searching)[0]
        if idx.size == 0:
            break
        for dx, dy, w in _ring_offsets(radius):
            cy = ty[idx] + dy
            cx = tx[idx] + dx
            ok = usable[cy, cx]
            if not ok.any():
                continue
            hit = idx[ok]
            acc[hit] += colors[cy[ok], cx[ok]] * w
            weight[hit] += w
        searching[idx] = weight[idx] < TARGET_WEIGHT

    found = weight > 0
    if not found.all():
        logger.debug("Neighbor fill %s: %d pixels had no usable neighbors", region, int((~found).sum()))

    averaged = np.clip(np.rint(acc[found] / weight[found, np.newaxis]), 0, 255).astype(np.uint8)
    image.pixels[region.y + ys[found], region.x + xs[found], :3] = averaged
    logger.debug("Neighbor fill %s: %d pixels rebuilt", region, int(found.sum()))

    if smooth:
        box_blur(image, region, SMOOTH_RADIUS, SMOOTH_PASSES)


def _border_samples(image, region, border):
    x, y, w, h = region.x, region.y, region.width, region.height
    cols = np.arange(x - border, x + w + border, BORDER_STEP)
    rows_above = np.arange(y - border, y, BORDER_STEP)
    rows_below = np.arange(y + h, y + h + border, BORDER_STEP)
    rows_mid = np.arange(y, y + h, BORDER_STEP)
    cols_left = np.arange(x - border, x, BORDER_STEP)
    cols_right = np.arange(x + w, x + w + border, BORDER_STEP)

    strips = [
        np.meshgrid(cols, np.concatenate([rows_above, rows_below])),
        np.meshgrid(np.concatenate([cols_left, cols_right]), rows_mid),
    ]
    bx = np.concatenate([s[0].ravel() for s in strips])
    by = np.concatenate([s[1].ravel() for s in strips])

    in_bounds = (bx >= 0) & (bx < image.width) & (by >= 0) & (by < image.height)
    return image.pixels[by[in_bounds], bx[in_bounds]].astype(np.float64)


def border_inpaint(image, region, rng=None):
    """
    Fill `region` with the mean color of a ring around it, plus a little
    noise so the patch does not look flat. Used when no alpha map exists.
    """
    border = max(BORDER_MIN, int(min(region.width, region.height) * BORDER_RATIO))
    samples = _border_samples(image, region, border)
    if samples.size == 0:
        logger.debug("Border inpaint %s: no border pixels inside the image", region)
        return
    clipped = region.clip(image.width, image.height)
    if clipped is None:
        return
    inside, dx, dy = clipped

    if rng is None:
        rng = np.random.default_rng()
    avg = samples.mean(axis=0)

    w, h = region.width, region.height
    py, px = np.mgrid[0:h, 0:w]
    edge = np.minimum(np.minimum(px, w - px), np.minimum(py, h - py)) / (min(w, h) * 0.5)
    noise = (rng.random((h, w)) - 0.5) * NOISE_AMPLITUDE * np.minimum(edge, 1.0)
    noise = noise[dy:dy + inside.height, dx:dx + inside.width]

    patch = image.view(inside)
    filled = avg[np.newaxis, np.newaxis, :3] + noise[:, :, np.newaxis]
    patch[:, :, :3] = np.clip(np.rint(filled), 0, 255).astype(np.uint8)
    patch[:, :, 3] = 255
    logger.debug("Border inpaint %s: %d samples, mean %s", region, len(samples), np.round(avg, 1))

    box_blur(image, region, INPAINT_BLUR_RADIUS, INPAINT_BLUR_PASSES)
