from __future__ import annotations

from .models import ExtractionResult


def assemble_content(result: ExtractionResult) -> str:
    """
    Render an extraction as the plain-text document handed to plan generation.

    Sections appear in a fixed order and are omitted entirely when empty.
    """
    if not result.success:
        raise ValueError(f"Cannot assemble a failed extraction: {result.error}")

    parts: list[str] = [
        f"Platform: {result.platform.upper()}",
        f"URL: {result.url}",
    ]

    meta = result.metadata
    if meta is not None and meta.author:
        parts.append(f"Author: {meta.author}")
    if meta is not None and meta.title:
        parts.append(f"Title: {meta.title}")

    if result.caption:
        parts.append("\n--- Caption/Description ---")
        parts.append(result.caption)

    if result.audio_transcript:
        parts.append("\n--- Audio Transcript (What was said) ---")
        parts.append(result.audio_transcript)

    if result.ocr_text:
        parts.append("\n--- On-Screen Text (OCR) ---")
        parts.append(result.ocr_text)

    items = result.carousel_items or ()
    if items:
        parts.append(f"\n--- Carousel/Slides ({len(items)} items) ---")
        for position, item in enumerate(items, start=1):
            parts.append(f"\nSlide {position} ({item.type}):")
            if item.transcript:
                parts.append(f"  Audio: {item.transcript}")
            if item.ocr_text:
                parts.append(f"  Text: {item.ocr_text}")

    return "\n".join(parts)
