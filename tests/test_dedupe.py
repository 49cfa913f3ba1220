from __future__ import annotations

import unittest

from social_extract.dedupe import (
    cache_key,
    canonicalize_url,
    dedupe_texts,
    jaccard_similarity,
    normalize_text,
)


class TestCanonicalize(unittest.TestCase):
    def test_canonicalize_strips_query_and_frag(self) -> None:
        url = "https://www.instagram.com/p/AbC/?utm_source=x#frag"
        self.assertEqual(canonicalize_url(url), "https://instagram.com/p/AbC")

    def test_canonicalize_keeps_youtube_video_param(self) -> None:
        url = "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s"
        self.assertEqual(canonicalize_url(url), "https://youtube.com/watch?v=dQw4w9WgXcQ")

    def test_cache_key_prefers_post_ids(self) -> None:
        self.assertEqual(
            cache_key("https://www.instagram.com/reel/C1abc/?igsh=1"), "instagram:C1abc"
        )
        self.assertEqual(
            cache_key("https://instagram.com/p/C1abc/"), "instagram:C1abc"
        )
        self.assertEqual(
            cache_key("https://www.tiktok.com/@u/video/123456"), "tiktok:123456"
        )
        self.assertEqual(
            cache_key("https://vm.tiktok.com/ZMabc/"), "url:https://vm.tiktok.com/ZMabc"
        )


class TestDedupeTexts(unittest.TestCase):
    def test_prefix_collapses_to_longer(self) -> None:
        longer = "Visit Joe's Cafe for $10 lunch specials today only"
        shorter = "Visit Joe's Cafe for $10 lunch specials"

        self.assertEqual(dedupe_texts([shorter, longer]), [longer])
        self.assertEqual(dedupe_texts([longer, shorter]), [longer])

    def test_identical_after_normalization(self) -> None:
        self.assertEqual(
            dedupe_texts(["SALE  today", "sale today", "Opening Hours 9-5"]),
            ["SALE  today", "Opening Hours 9-5"],
        )

    def test_short_substrings_are_kept(self) -> None:
        texts = ["Menu", "Menu of the day: soup"]
        self.assertEqual(dedupe_texts(texts), texts)

    def test_similar_word_sets_keep_longer_raw_text(self) -> None:
        a = "one two three four five six seven eight nine ten eleven twelve"
        b = "twelve eleven ten nine eight seven six five four three two one !"
        self.assertGreater(jaccard_similarity(normalize_text(a), normalize_text(b)), 0.85)
        self.assertEqual(dedupe_texts([a, b]), [b])

    def test_distinct_texts_keep_order(self) -> None:
        texts = ["Best tacos in town", "Open until midnight", "Free parking behind"]
        self.assertEqual(dedupe_texts(texts), texts)

    def test_normalize_text(self) -> None:
        self.assertEqual(normalize_text("  Hello\n\tWORLD  "), "hello world")


if __name__ == "__main__":
    unittest.main()
