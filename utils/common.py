"""
Shared utilities for the InnerTube scrapers.
"""

import asyncio
import re


class AdaptiveDelay:
    """Adaptive pacing: speeds up on success, backs off on errors/429s."""

    def __init__(self, min_delay=0.3, max_delay=10.0, initial=2.0):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.delay = initial

    async def wait(self):
        if self.delay > 0:
            await asyncio.sleep(self.delay)

    def on_success(self):
        self.delay = max(self.min_delay, self.delay * 0.85)

    def on_error(self):
        self.delay = min(self.max_delay, self.delay * 2.0)

    def on_rate_limit(self):
        self.delay = min(self.max_delay, self.delay * 3.0)


def _parse_count_string(text: str) -> int:
    """Parse count strings like '1.2K', '3M', '42' to integers."""
    if not text:
        return 0
    text = text.strip().upper().replace(",", "")
    text = re.sub(r'[^0-9KMB.]', '', text)
    try:
        if text.endswith("B"):
            return int(float(text[:-1]) * 1_000_000_000)
        if text.endswith("M"):
            return int(float(text[:-1]) * 1_000_000)
        if text.endswith("K"):
            return int(float(text[:-1]) * 1_000)
        return int(float(text))
    except (ValueError, IndexError):
        return 0


def _strip_non_digit(text: str) -> str:
    return re.sub(r"[^0-9]", "", text or "")


def _parse_digits(text: str) -> int | None:
    """'1,234 videos' -> 1234; None when the text carries no digits."""
    digits = _strip_non_digit(text)
    return int(digits) if digits else None
