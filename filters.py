import logging

import numpy as np

logger = logging.getLogger(__name__)


def _window_sum(arr, r, axis):
    # arr is edge-padded by r along axis
    n = arr.shape[axis] - 2 * r
    total = np.zeros_like(np.take(arr, range(n), axis=axis))
    for k in range(2 * r + 1):
        total += np.take(arr, range(k, k + n), axis=axis)
    return total


def box_blur(image, region, radius, passes):
    """
    Multi-pass box blur confined to `region`.

    Neighbors are clamped to the region's own edges, so nothing outside the
    region is read or written. All four channels are averaged.
    """
    clipped = region.clip(image.width, image.height)
    if clipped is None or passes < 1:
        return
    region = clipped[0]

    r = max(1, int(radius) // passes)
    count = (2 * r + 1) ** 2
    view = image.view(region)
    logger.debug("Box blur %s: radius=%d passes=%d kernel=%d", region, radius, passes, r)

    for _ in range(passes):
        src = view.astype(np.float64)
        padded = np.pad(src, ((r, r), (r, r), (0, 0)), mode="edge")
        # Clamped neighborhoods are separable: sum rows, then columns
        sums = _window_sum(_window_sum(padded, r, axis=1), r, axis=0)
        view[...] = np.clip(np.rint(sums / count), 0, 255).astype(np.uint8)


def solid_fill(image, region, color, opacity):
    """Paint `color` over `region` with source-over compositing."""
    clipped = region.clip(image.width, image.height)
    if clipped is None:
        return
    view = image.view(clipped[0])

    src = np.array(color[:3], dtype=np.float64)
    dst = view.astype(np.float64)
    dst_a = dst[:, :, 3:4] / 255.0

    out_a = opacity + dst_a * (1.0 - opacity)
    out_rgb = (src * opacity + dst[:, :, :3] * dst_a * (1.0 - opacity)) / out_a

    view[:, :, :3] = np.clip(np.rint(out_rgb), 0, 255).astype(np.uint8)
    view[:, :, 3] = np.clip(np.rint(out_a[:, :, 0] * 255.0), 0, 255).astype(np.uint8)
