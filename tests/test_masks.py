import http.client
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
from PIL import Image

from masks import MaskProvider, build_alpha_map
from watermark import AssetUnavailable, PixelBuffer

from .helpers import disc_reference


class TestBuildAlphaMap(unittest.TestCase):
    def test_alpha_is_brightest_channel(self):
        pixels = np.zeros((1, 3, 4), dtype=np.uint8)
        pixels[0, 0] = (255, 0, 0, 0)
        pixels[0, 1] = (10, 51, 20, 255)
        pixels[0, 2] = (0, 0, 0, 255)
        alpha_map = build_alpha_map(PixelBuffer(pixels))
        self.assertEqual((alpha_map.width, alpha_map.height), (3, 1))
        np.testing.assert_allclose(alpha_map.values[0], [1.0, 0.2, 0.0])

    def test_wrong_size_is_unavailable(self):
        with self.assertRaises(AssetUnavailable):
            build_alpha_map(disc_reference(48), expected_size=96)

    def test_matching_size(self):
        alpha_map = build_alpha_map(disc_reference(48, level=255), expected_size=48)
        self.assertEqual(alpha_map.values.shape, (48, 48))
        self.assertEqual(alpha_map.values.max(), 1.0)
        self.assertEqual(alpha_map.values[0, 0], 0.0)


class TestMaskProvider(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write_mask(self, path, size):
        disc_reference(size).to_image().convert("RGB").save(path)

    def test_loads_cached_mask(self):
        self._write_mask(self.tmp_dir / "bg_48.png", 48)
        provider = MaskProvider(cache_dir=str(self.tmp_dir), download=False)
        reference = provider(48)
        self.assertEqual((reference.width, reference.height), (48, 48))

    def test_missing_mask_without_download(self):
        provider = MaskProvider(cache_dir=str(self.tmp_dir), download=False)
        with self.assertRaises(AssetUnavailable):
            provider(96)

    def test_unknown_size(self):
        provider = MaskProvider(cache_dir=str(self.tmp_dir), download=False)
        with self.assertRaises(AssetUnavailable):
            provider(64)

    def test_downloads_into_cache(self):
        source = self.tmp_dir / "remote_bg_96.png"
        self._write_mask(source, 96)
        cache = self.tmp_dir / "cache"
        provider = MaskProvider(cache_dir=str(cache), urls={96: source.as_uri()})

        reference = provider(96)
        self.assertEqual((reference.width, reference.height), (96, 96))
        self.assertTrue((cache / "bg_96.png").exists())

    def test_failed_download_leaves_no_file(self):
        cache = self.tmp_dir / "cache"
        missing = (self.tmp_dir / "nope.png").as_uri()
        provider = MaskProvider(cache_dir=str(cache), urls={48: missing})
        with self.assertRaises(AssetUnavailable):
            provider(48)
        self.assertEqual(os.listdir(cache), [])

    def test_uncreatable_cache_dir(self):
        blocker = self.tmp_dir / "not_a_dir"
        blocker.write_bytes(b"")
        provider = MaskProvider(cache_dir=str(blocker / "masks"))
        with self.assertRaises(AssetUnavailable):
            provider(48)

    def test_truncated_download(self):
        cache = self.tmp_dir / "cache"
        response = mock.MagicMock()
        response.__enter__.return_value.read.side_effect = http.client.IncompleteRead(b"\x89PNG", 100)
        provider = MaskProvider(cache_dir=str(cache))
        with mock.patch("masks.urllib.request.urlopen", return_value=response):
            with self.assertRaises(AssetUnavailable):
                provider(48)
        self.assertEqual(os.listdir(cache), [])

    def test_corrupt_mask(self):
        (self.tmp_dir / "bg_48.png").write_bytes(b"not a png")
        provider = MaskProvider(cache_dir=str(self.tmp_dir), download=False)
        with self.assertRaises(AssetUnavailable):
            provider(48)


if __name__ == "__main__":
    unittest.main()
