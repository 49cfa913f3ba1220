from __future__ import annotations

import unittest

from social_extract.platforms import (
    detect_platform,
    instagram_shortcode,
    supported_platforms,
    tiktok_video_id,
)


class TestDetectPlatform(unittest.TestCase):
    def test_known_platforms(self) -> None:
        cases = {
            "https://www.instagram.com/reel/C1abcDEF/": "instagram",
            "https://instagram.com/p/AbC123/?igsh=xyz": "instagram",
            "https://www.instagram.com/some.user/p/AbC123/": "instagram",
            "https://www.tiktok.com/@user.name/video/7234567890123456789": "tiktok",
            "https://www.tiktok.com/@user/photo/7234567890123456789": "tiktok",
            "https://vm.tiktok.com/ZMabc123/": "tiktok",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ": "youtube",
            "https://youtu.be/dQw4w9WgXcQ": "youtube",
            "https://www.youtube.com/shorts/abcdEFGhijk": "youtube",
            "https://x.com/someone/status/1234567890": "twitter",
            "https://twitter.com/someone/status/1234567890": "twitter",
            "https://www.facebook.com/watch/?v=123456": "facebook",
            "https://www.facebook.com/reel/123456": "facebook",
            "https://fb.watch/abcDEF/": "facebook",
            "https://www.reddit.com/r/travel/comments/abc123/some_title/": "reddit",
        }
        for url, expected in cases.items():
            with self.subTest(url=url):
                self.assertEqual(detect_platform(url), expected)

    def test_unsupported(self) -> None:
        for url in (
            "",
            "   ",
            "https://example.com/video/1",
            "https://www.instagram.com/someuser/",
            "https://netflix.com/someone/status/1",
        ):
            with self.subTest(url=url):
                self.assertIsNone(detect_platform(url))

    def test_supported_platforms_order(self) -> None:
        self.assertEqual(
            supported_platforms(),
            ("instagram", "tiktok", "youtube", "twitter", "facebook", "reddit"),
        )


class TestPostIds(unittest.TestCase):
    def test_instagram_shortcode(self) -> None:
        self.assertEqual(instagram_shortcode("https://www.instagram.com/reel/C1abcDEF/"), "C1abcDEF")
        self.assertEqual(instagram_shortcode("https://instagram.com/p/Ab_C-1/?x=1"), "Ab_C-1")
        self.assertIsNone(instagram_shortcode("https://instagram.com/someuser/"))

    def test_tiktok_video_id(self) -> None:
        self.assertEqual(
            tiktok_video_id("https://www.tiktok.com/@user/video/7234567890123456789?lang=en"),
            "7234567890123456789",
        )
        self.assertIsNone(tiktok_video_id("https://vm.tiktok.com/ZMabc123/"))


if __name__ == "__main__":
    unittest.main()
