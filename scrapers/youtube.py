"""
YouTube Comments Scraper
========================
High level entry point: video URL in, list of flat comment records out.
No file I/O. Builds on:
  - ResourceResolver   (watch page, for the video title)
  - CommentPaginator   (top-level comments, then reply threads)
"""

import logging
import re
from urllib.parse import parse_qs, urlparse

from scrapers.comments import CommentPaginator
from scrapers.errors import (
    MalformedResponse,
    NetworkError,
    ResourceUnavailable,
    TransientFetchFailure,
    YouTubeError,
)
from scrapers.models import Comment
from scrapers.resolver import ResourceResolver
from scrapers.transport import AiohttpTransport, Transport
from utils.common import AdaptiveDelay

logger = logging.getLogger(__name__)

# Suppress noisy logging
logging.getLogger("aiohttp").setLevel(logging.WARNING)

DEFAULT_MAX_COMMENTS = 0
DEFAULT_MAX_REPLIES = 5


# ---------------------------------------------------------------------------
#  URL helpers  (module-level, exported)
# ---------------------------------------------------------------------------

def extract_video_id(url: str) -> str:
    """
    Extract the video ID from a YouTube URL (or a bare 11-char ID).
    Supports formats:
      https://www.youtube.com/watch?v=VIDEO_ID
      https://youtu.be/VIDEO_ID
      https://www.youtube.com/shorts/VIDEO_ID
      https://www.youtube.com/embed/VIDEO_ID
      https://www.youtube.com/live/VIDEO_ID
      https://m.youtube.com/watch?v=VIDEO_ID
    """
    if not url:
        return ""

    url = url.strip()
    if re.fullmatch(r"[a-zA-Z0-9_-]{11}", url):
        return url
    if not url.startswith("http"):
        url = f"https://{url}"

    parsed = urlparse(url)

    # youtu.be/VIDEO_ID
    if parsed.hostname in ("youtu.be",):
        vid = parsed.path.lstrip("/").split("/")[0]
        if re.fullmatch(r"[a-zA-Z0-9_-]{11}", vid):
            return vid

    # youtube.com/watch?v=VIDEO_ID
    qs = parse_qs(parsed.query)
    if "v" in qs and re.fullmatch(r"[a-zA-Z0-9_-]{11}", qs["v"][0]):
        return qs["v"][0]

    # youtube.com/shorts/VIDEO_ID or /embed/VIDEO_ID or /live/VIDEO_ID or /v/VIDEO_ID
    match = re.search(r"/(?:shorts|embed|live|v)/([a-zA-Z0-9_-]{11})", parsed.path)
    if match:
        return match.group(1)

    return ""


def normalize_youtube_url(url: str) -> str:
    """Normalize a YouTube URL to standard watch?v= format."""
    video_id = extract_video_id(url)
    if video_id:
        return f"https://www.youtube.com/watch?v={video_id}"
    return url


def comment_to_record(
    comment: Comment,
    video_id: str = "",
    video_title: str = "",
    input_url: str = "",
) -> dict:
    """Flatten a Comment into the record shape used for export."""
    comment_url = (
        f"https://www.youtube.com/watch?v={video_id}&lc={comment.id}"
        if video_id and comment.id else ""
    )
    profile_id = comment.author_channel_id
    return {
        "id": comment.id,
        "youtubeUrl": f"https://www.youtube.com/watch?v={video_id}" if video_id else "",
        "videoTitle": video_title,
        "commentUrl": comment_url,
        "date": comment.published_time,
        "text": comment.text,
        "profileName": comment.author,
        "profileId": profile_id,
        "profileUrl": f"https://www.youtube.com/channel/{profile_id}" if profile_id else "",
        "likesCount": comment.like_count,
        "threadingDepth": 1 if comment.is_reply else 0,
        "isPinned": comment.is_pinned,
        "inputUrl": input_url,
    }


# ---------------------------------------------------------------------------
#  Core scraper class
# ---------------------------------------------------------------------------

class YouTubeCommentScraper:
    """
    Scrapes comments (and replies) from one YouTube video at a time.

    Returns list[dict] -- does NOT write any files.
    """

    def __init__(
        self,
        max_comments: int = DEFAULT_MAX_COMMENTS,
        max_replies: int = DEFAULT_MAX_REPLIES,
        progress_callback: callable = None,
        transport: Transport | None = None,
        delay: AdaptiveDelay | None = None,
    ):
        self.max_comments = max_comments
        self.max_replies = max_replies  # 0 = all, negative = skip replies
        self._progress_callback = progress_callback
        self._transport = transport
        self._delay = delay or AdaptiveDelay(min_delay=0.3, max_delay=10.0, initial=1.5)

    # -- Progress helper ----------------------------------------------------

    def _progress(self, msg: str):
        """Send a progress message through the callback if one is set."""
        if self._progress_callback:
            try:
                self._progress_callback(msg)
            except Exception:
                logger.debug("Progress callback failed", exc_info=True)

    # -- Steps --------------------------------------------------------------

    async def _video_title(self, resolver: ResourceResolver, video_id: str) -> str:
        try:
            resource = await resolver.resolve_watch_page(video_id)
        except (TransientFetchFailure, MalformedResponse) as e:
            logger.warning("Title lookup failed for %s: %s", video_id, e)
            return ""
        return resource.title

    async def _collect_replies(
        self,
        paginator: CommentPaginator,
        parent: Comment,
        seen_ids: set,
        deadline: float,
    ) -> list[Comment]:
        replies = []
        limit = self.max_replies if self.max_replies > 0 else None
        async for batch in paginator.iter_batches(parent.replies_token, deadline):
            for reply in batch.comments:
                if reply.id in seen_ids:
                    continue
                seen_ids.add(reply.id)
                replies.append(reply)
                if limit and len(replies) >= limit:
                    return replies
            self._delay.on_success()
            if not batch.is_last:
                await self._delay.wait()
        return replies

    async def _scrape(self, transport: Transport, video_id: str, input_url: str, deadline: float):
        resolver = ResourceResolver(transport)
        paginator = CommentPaginator(transport)

        self._progress("Loading video...")
        video_title = await self._video_title(resolver, video_id)
        if video_title:
            truncated = video_title[:80] + ("..." if len(video_title) > 80 else "")
            self._progress(f"Title: {truncated}")

        token = await paginator.fetch_initial_token(video_id)
        if not token:
            self._progress("No comments section found (comments may be disabled)")
            return []

        self._progress("Fetching comments...")
        comments = []
        seen_ids = set()
        done = False
        async for batch in paginator.iter_batches(token, deadline):
            for comment in batch.comments:
                if comment.id in seen_ids:
                    continue
                seen_ids.add(comment.id)
                comments.append(comment)
                if self.max_comments > 0 and len(comments) >= self.max_comments:
                    done = True
                    break
            self._progress(f"Found {len(comments)} comments so far...")
            self._delay.on_success()
            if done:
                break
            if not batch.is_last:
                await self._delay.wait()

        records = []
        threads = [c for c in comments if c.replies_token]
        if self.max_replies >= 0 and threads:
            self._progress("Loading replies...")
        for comment in comments:
            records.append(comment_to_record(comment, video_id, video_title, input_url))
            if self.max_replies < 0 or not comment.replies_token:
                continue
            try:
                replies = await self._collect_replies(paginator, comment, seen_ids, deadline)
            except NetworkError as e:
                # Replies are best effort: back off and keep the top-level comments
                if e.status == 429:
                    self._delay.on_rate_limit()
                else:
                    self._delay.on_error()
                logger.warning("Replies for %s failed: %s", comment.id, e)
                self._progress(f"Could not load replies for comment {comment.id}")
                await self._delay.wait()
                continue
            records.extend(
                comment_to_record(r, video_id, video_title, input_url) for r in replies
            )
        return records

    # -----------------------------------------------------------------------
    #  Main scrape method
    # -----------------------------------------------------------------------

    async def scrape_video_comments(self, video_url: str, deadline: float = 0) -> list[dict]:
        """
        Main entry point: scrape comments from a single YouTube video.
        ``deadline`` is a time.monotonic() value; 0 means no deadline.
        """
        input_url = video_url
        video_id = extract_video_id(video_url)
        if not video_id:
            self._progress(f"Invalid YouTube URL: {video_url}")
            raise ValueError(f"Invalid YouTube URL: {video_url!r}")

        self._progress(f"Processing: {normalize_youtube_url(video_url)}")
        limit_text = f"{self.max_comments}" if self.max_comments > 0 else "all"
        self._progress(f"Comment limit: {limit_text}")

        try:
            if self._transport is not None:
                return await self._scrape(self._transport, video_id, input_url, deadline)
            async with AiohttpTransport() as transport:
                return await self._scrape(transport, video_id, input_url, deadline)
        except ResourceUnavailable:
            self._progress("Video is not available")
            raise
        except YouTubeError:
            self._progress("Could not load comments")
            raise
