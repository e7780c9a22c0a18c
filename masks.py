import logging
import os
import http.client
import urllib.request

import numpy as np
from PIL import Image, UnidentifiedImageError

from watermark import AlphaMap, AssetUnavailable, PixelBuffer

logger = logging.getLogger(__name__)

# Configuration
MASK_URLS = {
    48: "https://raw.githubusercontent.com/journey-ad/gemini-watermark-remover/main/src/assets/bg_48.png",
    96: "https://raw.githubusercontent.com/journey-ad/gemini-watermark-remover/main/src/assets/bg_96.png"
}
CACHE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "masks")
DOWNLOAD_TIMEOUT = 30


def build_alpha_map(reference, expected_size=None):
    """
    Opacity template from a capture of the logo over a black background.

    The logo is white, so the brightest channel tells how much of each pixel
    is logo: alpha = max(r, g, b) / 255.
    """
    if expected_size is not None and (reference.width, reference.height) != (expected_size, expected_size):
        raise AssetUnavailable(
            f"reference is {reference.width}x{reference.height}, expected {expected_size}x{expected_size}")

    mask_arr = reference.pixels[:, :, :3].astype(float)
    alpha_map = np.max(mask_arr, axis=2) / 255.0
    return AlphaMap(reference.width, reference.height, alpha_map)


class MaskProvider:
    """
    Supplies the reference logo captures by size, downloading them into a
    local cache on first use.
    """

    def __init__(self, cache_dir=CACHE_DIR, urls=None, download=True, timeout=DOWNLOAD_TIMEOUT):
        self.cache_dir = cache_dir
        self.urls = dict(MASK_URLS if urls is None else urls)
        self.download = download
        self.timeout = timeout

    def get_mask_path(self, size):
        if size not in self.urls:
            raise AssetUnavailable(f"no reference mask for size {size}px")

        path = os.path.join(self.cache_dir, f"bg_{size}.png")
        if os.path.exists(path):
            return path
        if not self.download:
            raise AssetUnavailable(f"{path} is missing and downloads are disabled")

        logger.info("Downloading %dpx mask from %s", size, self.urls[size])
        tmp_path = path + ".part"
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with urllib.request.urlopen(self.urls[size], timeout=self.timeout) as resp, \
                    open(tmp_path, "wb") as fh:
                fh.write(resp.read())
            os.replace(tmp_path, path)
        except (OSError, http.client.HTTPException) as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise AssetUnavailable(f"error downloading {size}px mask: {e}") from e
        return path

    def load(self, size):
        path = self.get_mask_path(size)
        try:
            with Image.open(path) as mask_img:
                # The logo capture carries no useful alpha; keep RGB only
                reference = PixelBuffer.from_image(mask_img.convert("RGB"))
        except (OSError, UnidentifiedImageError) as e:
            raise AssetUnavailable(f"error loading mask {path}: {e}") from e
        logger.debug("Loaded %dpx mask from %s", size, path)
        return reference

    def __call__(self, size):
        return self.load(size)
