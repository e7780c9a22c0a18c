import os
import sys
import logging
import argparse

import numpy as np
from PIL import Image, UnidentifiedImageError

from filters import box_blur, solid_fill
from masks import CACHE_DIR, MaskProvider, build_alpha_map
from restore import border_inpaint, neighbor_fill, reverse_blend
from watermark import (METHODS, AssetUnavailable, ImageDecodeError, PixelBuffer, Settings,
                       locate)

logger = logging.getLogger(__name__)

BLUR_PASSES = 4


def load_image(image_path):
    try:
        with Image.open(image_path) as img:
            return PixelBuffer.from_image(img)
    except (OSError, UnidentifiedImageError) as e:
        raise ImageDecodeError(f"cannot open image {image_path}: {e}") from e


def save_image(buffer, output_path):
    result_img = buffer.to_image()
    ext = os.path.splitext(output_path)[1].lower()
    if ext in ['.jpg', '.jpeg']:
        result_img = result_img.convert("RGB")
    result_img.save(output_path)


def _alpha_map_for(region, reference_provider):
    if reference_provider is None:
        raise AssetUnavailable("no reference provider")
    reference = reference_provider(region.width)
    return build_alpha_map(reference, expected_size=region.width)


def process(image, settings, reference_provider=None, rng=None):
    """
    Hide the Gemini logo in a copy of `image` and return it.

    `reference_provider(size)` returns the reference logo capture for the
    given size. When it is missing or fails, "remove" and "inpaint" fall back
    to rebuilding the region from its border.
    """
    result = image.copy()
    region = locate(result.width, result.height)
    logger.info("Watermark region: size=%d, position=(%d, %d), method=%s",
                region.width, region.x, region.y, settings.method)

    if settings.method in ("remove", "inpaint"):
        try:
            alpha_map = _alpha_map_for(region, reference_provider)
        except AssetUnavailable as e:
            logger.warning("Alpha map unavailable (%s), falling back to border inpaint", e)
            border_inpaint(result, region, rng=rng)
        else:
            if settings.method == "remove":
                reverse_blend(result, region, alpha_map)
            else:
                neighbor_fill(result, region, alpha_map)
    elif settings.method == "blur":
        box_blur(result, region, settings.blur_radius, BLUR_PASSES)
    elif settings.method == "fill":
        solid_fill(result, region, settings.cover_color, settings.opacity)

    return result


def process_image(image_path, output_path=None, settings=None, reference_provider=None, rng=None):
    print(f"Processing: {image_path}")
    if settings is None:
        settings = Settings()

    image = load_image(image_path)
    print(f"Image Size: {image.width}x{image.height}")

    result = process(image, settings, reference_provider, rng=rng)

    if not output_path:
        base, ext = os.path.splitext(image_path)
        output_path = f"{base}_clean{ext}"

    # Explicitly remove existing file to ensure overwrite
    if os.path.exists(output_path):
        os.remove(output_path)
        print(f"Removed existing output file: {output_path}")

    save_image(result, output_path)
    print(f"Done. Saved to {output_path}")
    return output_path


def main(argv=None):
    parser = argparse.ArgumentParser(description="Remove Gemini watermark")
    parser.add_argument("image_path", help="Path to input image")
    parser.add_argument("output_path", nargs="?", help="Path to output image")
    parser.add_argument("--method", choices=METHODS, default="remove",
                        help="remove: reverse the alpha blend; inpaint: rebuild from neighboring pixels; "
                             "blur: box blur the logo; fill: paint over it")
    parser.add_argument("--blur-radius", type=int, default=20, help="Blur radius for --method blur (5-50)")
    parser.add_argument("--color", default="#000000", help="Fill color for --method fill")
    parser.add_argument("--opacity", type=float, default=1.0, help="Fill opacity in (0, 1]")
    parser.add_argument("--mask-dir", default=CACHE_DIR, help="Directory holding bg_48.png / bg_96.png")
    parser.add_argument("--no-download", action="store_true", help="Never download missing masks")
    parser.add_argument("--seed", type=int, help="Seed for the noise used by the border fallback")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        settings = Settings(method=args.method, blur_radius=args.blur_radius,
                            cover_color=args.color, opacity=args.opacity)
    except ValueError as e:
        parser.error(str(e))

    provider = MaskProvider(cache_dir=args.mask_dir, download=not args.no_download)
    rng = np.random.default_rng(args.seed)

    try:
        process_image(args.image_path, args.output_path, settings, provider, rng=rng)
    except (ImageDecodeError, OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
