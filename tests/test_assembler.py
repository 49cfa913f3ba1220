from __future__ import annotations

import unittest

from social_extract.assembler import assemble_content
from social_extract.models import CarouselItem, ExtractionResult, MediaMetadata


class TestAssembleContent(unittest.TestCase):
    def test_single_video_sections_in_order(self) -> None:
        result = ExtractionResult(
            platform="tiktok",
            url="https://www.tiktok.com/@eats/video/1",
            success=True,
            caption="3 cheap eats in Tokyo",
            audio_transcript="first stop is a tiny ramen bar",
            ocr_text="Ichiran Shibuya",
            metadata=MediaMetadata(author="eats", title="Tokyo eats"),
        )

        self.assertEqual(
            assemble_content(result),
            "\n".join(
                [
                    "Platform: TIKTOK",
                    "URL: https://www.tiktok.com/@eats/video/1",
                    "Author: eats",
                    "Title: Tokyo eats",
                    "\n--- Caption/Description ---",
                    "3 cheap eats in Tokyo",
                    "\n--- Audio Transcript (What was said) ---",
                    "first stop is a tiny ramen bar",
                    "\n--- On-Screen Text (OCR) ---",
                    "Ichiran Shibuya",
                ]
            ),
        )

    def test_empty_sections_are_omitted(self) -> None:
        result = ExtractionResult(platform="youtube", url="https://youtu.be/x", success=True)
        self.assertEqual(assemble_content(result), "Platform: YOUTUBE\nURL: https://youtu.be/x")

    def test_carousel_slides_are_numbered_by_position(self) -> None:
        result = ExtractionResult(
            platform="instagram",
            url="https://www.instagram.com/p/abc/",
            success=True,
            caption="Weekend list",
            carousel_items=(
                CarouselItem(index=0, type="image", ocr_text="Cafe Luna"),
                CarouselItem(index=2, type="video", transcript="grab a table outside"),
                CarouselItem(index=3, type="image"),
            ),
        )

        text = assemble_content(result)

        self.assertIn("\n--- Carousel/Slides (3 items) ---", text)
        self.assertIn("\nSlide 1 (image):\n  Text: Cafe Luna", text)
        self.assertIn("\nSlide 2 (video):\n  Audio: grab a table outside", text)
        self.assertTrue(text.endswith("\nSlide 3 (image):"))
        self.assertNotIn("On-Screen Text", text)

    def test_failed_result_is_rejected(self) -> None:
        failed = ExtractionResult.failure(platform="instagram", url="u", error="nope")
        with self.assertRaises(ValueError):
            assemble_content(failed)


if __name__ == "__main__":
    unittest.main()
