"""
Runtime settings for the InnerTube scrapers.
Module-level constants; a few can be overridden through the environment.
"""

import os

# ---------------------------------------------------------------------------
#  Endpoints
# ---------------------------------------------------------------------------

YOUTUBE_BASE_URL = "https://www.youtube.com"
INNERTUBE_BASE_URL = f"{YOUTUBE_BASE_URL}/youtubei/v1"
WATCH_PAGE_URL = f"{YOUTUBE_BASE_URL}/watch?v={{video_id}}&bpctr=9999999999"

# ---------------------------------------------------------------------------
#  Locale sent in every client context
# ---------------------------------------------------------------------------

HL = os.environ.get("YT_HL") or "en"
GL = os.environ.get("YT_GL") or "US"
UTC_OFFSET_MINUTES = 0

# ---------------------------------------------------------------------------
#  Transport
# ---------------------------------------------------------------------------

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
USER_AGENT = os.environ.get("YT_USER_AGENT") or DEFAULT_USER_AGENT

REQUEST_TIMEOUT = float(os.environ.get("YT_REQUEST_TIMEOUT") or 30)

# ---------------------------------------------------------------------------
#  Retry policy
# ---------------------------------------------------------------------------

# Fixed: the watch page is the only retried exchange.
WATCH_PAGE_ATTEMPTS = 5

# About tab of the channel browse endpoint
CHANNEL_ABOUT_PARAMS = "EgVhYm91dPIGBAoCEgA%3D"

COMMENT_SECTION_ID = "comment-item-section"
