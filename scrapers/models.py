"""
Records produced by the resolvers and the comment pagination engine.
All of them are immutable once built.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import unquote, urlparse

from utils.rich_text import is_line_break


# ---------------------------------------------------------------------------
#  Resolved resources
# ---------------------------------------------------------------------------

class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Availability:
    status: AvailabilityStatus
    reason: str = ""

    @property
    def is_available(self) -> bool:
        return self.status is AvailabilityStatus.AVAILABLE

    @classmethod
    def available(cls) -> "Availability":
        return cls(AvailabilityStatus.AVAILABLE)

    @classmethod
    def unavailable(cls, reason: str = "") -> "Availability":
        return cls(AvailabilityStatus.UNAVAILABLE, reason)


@dataclass(frozen=True)
class Thumbnail:
    url: str
    width: int
    height: int


@dataclass(frozen=True)
class VideoDetails:
    video_id: str
    title: str
    author: str = ""
    channel_id: str = ""
    description: str = ""
    duration_seconds: int | None = None
    view_count: int | None = None
    keywords: tuple = ()
    is_live: bool = False
    upload_date: str = ""
    signature_timestamp: str | None = None


@dataclass(frozen=True)
class ChannelDetails:
    channel_id: str
    title: str
    handle: str | None = None
    description: str = ""
    video_count: int | None = None
    subscriber_count: int | None = None
    thumbnails: tuple = ()
    banners: tuple = ()

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/channel/{self.channel_id}"


@dataclass(frozen=True)
class ResolvedResource:
    """One resolved watch page, player response or channel.

    ``video`` / ``channel`` hold the extension fields for whichever
    resolution produced the record.
    """

    identifier: str
    kind: str
    availability: Availability
    title: str = ""
    persona: str | None = None
    video: VideoDetails | None = None
    channel: ChannelDetails | None = None


# ---------------------------------------------------------------------------
#  Channel locators
# ---------------------------------------------------------------------------

class LocatorKind(str, Enum):
    ID = "id"
    HANDLE = "handle"
    SLUG = "slug"
    USER = "user"


_CHANNEL_ID_RE = re.compile(r"^UC[\w-]{22}$")
_HANDLE_RE = re.compile(r"^[\w.\-]{3,30}$", re.UNICODE)
_NAME_RE = re.compile(r"^[\w\-]+$", re.UNICODE)


@dataclass(frozen=True)
class ChannelLocator:
    kind: LocatorKind
    value: str

    @property
    def resolve_path(self) -> str:
        """Site path resolved by ``navigation/resolve_url`` for non-id locators."""
        if self.kind is LocatorKind.HANDLE:
            return f"/@{self.value}"
        if self.kind is LocatorKind.SLUG:
            return f"/c/{self.value}"
        if self.kind is LocatorKind.USER:
            return f"/user/{self.value}"
        return f"/channel/{self.value}"

    @classmethod
    def parse(cls, raw: str) -> "ChannelLocator":
        """Accepts a channel id, ``@handle``, or a channel URL in any of the
        ``/channel/``, ``/@``, ``/c/`` and ``/user/`` forms."""
        value = (raw or "").strip()
        if not value:
            raise ValueError("Empty channel locator")

        if _CHANNEL_ID_RE.match(value):
            return cls(LocatorKind.ID, value)
        if value.startswith("@") and _HANDLE_RE.match(value[1:]):
            return cls(LocatorKind.HANDLE, value[1:])

        if "youtube.com" in value:
            if not value.startswith("http"):
                value = f"https://{value}"
            path = unquote(urlparse(value).path)
            parts = [p for p in path.split("/") if p]
            if parts:
                head = parts[0]
                if head == "channel" and len(parts) > 1 and _CHANNEL_ID_RE.match(parts[1]):
                    return cls(LocatorKind.ID, parts[1])
                if head.startswith("@") and _HANDLE_RE.match(head[1:]):
                    return cls(LocatorKind.HANDLE, head[1:])
                if head == "c" and len(parts) > 1 and _NAME_RE.match(parts[1]):
                    return cls(LocatorKind.SLUG, parts[1])
                if head == "user" and len(parts) > 1 and _NAME_RE.match(parts[1]):
                    return cls(LocatorKind.USER, parts[1])

        raise ValueError(f"Invalid channel locator: {raw!r}")


# ---------------------------------------------------------------------------
#  Comments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Comment:
    id: str
    text_segments: tuple
    replies_token: str | None = None
    like_count: int = 0
    author: str = ""
    author_channel_id: str = ""
    published_time: str = ""
    is_pinned: bool = False
    is_reply: bool = False

    @property
    def text(self) -> str:
        return "".join(self.text_segments)

    @property
    def lines(self) -> list[str]:
        """Text split on the structural line breaks."""
        lines = [""]
        for segment in self.text_segments:
            if is_line_break(segment):
                lines.append("")
            else:
                lines[-1] += segment
        return lines


@dataclass(frozen=True)
class CommentBatch:
    comments: tuple = field(default_factory=tuple)
    next_token: str | None = None

    @property
    def is_last(self) -> bool:
        return self.next_token is None
