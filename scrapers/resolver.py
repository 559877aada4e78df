"""
Resilient resolver for watch pages, player responses and channels.

Three policies, one per operation:
  - watch page: one GET, retried (bounded) only while the page fails to parse
  - player:     personas tried strictly in order, no retry of the same persona
  - channel:    same persona fallback, with a resolve_url hop for handles,
                slugs and legacy usernames
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from config import settings
from config.personas import DEFAULT_CHANNEL_ORDER, DEFAULT_PLAYER_ORDER, ClientPersona
from scrapers import request_builder
from scrapers.errors import (
    ChannelUnavailable,
    MalformedResponse,
    NetworkError,
    TransientFetchFailure,
    VideoUnavailable,
)
from scrapers.models import (
    Availability,
    ChannelDetails,
    ChannelLocator,
    LocatorKind,
    ResolvedResource,
    Thumbnail,
    VideoDetails,
)
from scrapers.transport import Transport
from utils.common import _parse_count_string, _parse_digits
from utils.reader import JsonView, ValueKind, loads

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Per-call resolution state
# ---------------------------------------------------------------------------

class ResolutionState(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


TERMINAL_STATES = {ResolutionState.RESOLVED, ResolutionState.UNAVAILABLE, ResolutionState.FAILED}


@dataclass
class ResolutionTrace:
    """State machine for one resolution call. Never shared between calls."""

    resource_id: str
    operation: str
    state: ResolutionState = ResolutionState.PENDING
    attempts: int = 0
    history: list = field(default_factory=list)

    def _move(self, state: ResolutionState, detail: str = ""):
        if self.state in TERMINAL_STATES:
            raise RuntimeError(
                f"{self.operation}({self.resource_id}) already {self.state.value}"
            )
        self.state = state
        self.history.append((state, detail))
        logger.debug("%s(%s) -> %s %s", self.operation, self.resource_id, state.value, detail)

    def attempt(self, detail: str = ""):
        if self.attempts:
            self._move(ResolutionState.RETRYING, f"#{self.attempts} {detail}".strip())
            self._move(ResolutionState.PENDING)
        self.attempts += 1

    def resolved(self, detail: str = ""):
        self._move(ResolutionState.RESOLVED, detail)

    def unavailable(self, detail: str = ""):
        self._move(ResolutionState.UNAVAILABLE, detail)

    def failed(self, detail: str = ""):
        self._move(ResolutionState.FAILED, detail)


# ---------------------------------------------------------------------------
#  Watch page parsing
# ---------------------------------------------------------------------------

_INITIAL_PLAYER_RE = (
    re.compile(r'var\s+ytInitialPlayerResponse\s*=\s*(\{.+?\});\s*(?:var\s|</script>)', re.DOTALL),
    re.compile(r'window\["ytInitialPlayerResponse"\]\s*=\s*(\{.+?\});\s*', re.DOTALL),
)
_INITIAL_DATA_RE = (
    re.compile(r'var\s+ytInitialData\s*=\s*(\{.+?\});\s*</script>', re.DOTALL),
    re.compile(r'window\["ytInitialData"\]\s*=\s*(\{.+?\});\s*', re.DOTALL),
)
_OG_URL_RE = re.compile(r'<meta\s+property="og:url"', re.IGNORECASE)
_STS_RE = re.compile(r'"(?:STS|signatureTimestamp)"\s*:\s*(\d+)')


def _extract_blob(html: str, patterns) -> JsonView | None:
    for pattern in patterns:
        match = pattern.search(html)
        if not match:
            continue
        try:
            return JsonView(json.loads(match.group(1)))
        except json.JSONDecodeError:
            continue
    return None


@dataclass(frozen=True)
class WatchPage:
    player_response: JsonView | None
    initial_data: JsonView | None
    is_available: bool
    signature_timestamp: str | None


def parse_watch_page(html: str) -> WatchPage | None:
    """None when the HTML holds neither the player nor the initial-data blob."""
    if not html:
        return None
    player_response = _extract_blob(html, _INITIAL_PLAYER_RE)
    initial_data = _extract_blob(html, _INITIAL_DATA_RE)
    if player_response is None and initial_data is None:
        return None
    sts = _STS_RE.search(html)
    return WatchPage(
        player_response=player_response,
        initial_data=initial_data,
        is_available=bool(_OG_URL_RE.search(html)),
        signature_timestamp=sts.group(1) if sts else None,
    )


# ---------------------------------------------------------------------------
#  Response projections
# ---------------------------------------------------------------------------

def _text(view: JsonView | None) -> str:
    """Text of a ``simpleText`` / ``runs`` node, or of a plain string."""
    if view is None:
        return ""
    if view.string() is not None:
        return view.string()
    simple = view.find("simpleText")
    if simple is not None and simple.string() is not None:
        return simple.string()
    runs = view.find("runs")
    if runs is None:
        return ""
    return "".join(_text(run.find("text")) for run in runs.array_or_empty())


def _int(view: JsonView | None) -> int | None:
    return view.integer() if view is not None else None


def _array(view: JsonView | None) -> list:
    return view.array_or_empty() if view is not None else []


def _flag(view: JsonView | None) -> bool:
    return bool(view is not None and view.boolean())


def _thumbnails(view: JsonView | None) -> tuple:
    if view is None:
        return ()
    thumbs = []
    for thumb in view.array_or_empty():
        url = thumb.require("url").string()
        if not url:
            raise MalformedResponse(f"{thumb.path_str}.url", "Thumbnail url is not a string")
        if url.startswith("//"):
            url = f"https:{url}"
        thumbs.append(Thumbnail(
            url=url,
            width=_int(thumb.find("width")) or 0,
            height=_int(thumb.find("height")) or 0,
        ))
    return tuple(thumbs)


def playability(player_response: JsonView) -> Availability:
    status = player_response.find("playabilityStatus", "status")
    if status is None or status.string() is None:
        return Availability.unavailable("no playability status")
    if status.string().upper() == "OK":
        return Availability.available()
    reason = _text(player_response.find("playabilityStatus", "reason"))
    return Availability.unavailable(reason or status.string())


def video_details(player_response: JsonView, signature_timestamp: str | None = None) -> VideoDetails:
    """Project ``videoDetails`` (+ microformat). videoId and title are required."""
    details = player_response.require("videoDetails")
    video_id = details.require("videoId").string()
    title = details.require("title").string()
    if video_id is None or title is None:
        raise MalformedResponse(details.path_str, "videoDetails.videoId/title are not strings")
    micro = player_response.find("microformat", "playerMicroformatRenderer")
    keywords = tuple(k.string() for k in _array(details.find("keywords")) if k.string())
    return VideoDetails(
        video_id=video_id,
        title=title,
        author=_text(details.find("author")),
        channel_id=_text(details.find("channelId")),
        description=_text(details.find("shortDescription")),
        duration_seconds=_int(details.find("lengthSeconds")),
        view_count=_int(details.find("viewCount")),
        keywords=keywords,
        is_live=_flag(details.find("isLiveContent")),
        upload_date=_text(micro.find("uploadDate")) if micro is not None else "",
        signature_timestamp=signature_timestamp,
    )


def _raise_unavailable(error_cls, resource_id: str, reasons: list, trace: ResolutionTrace):
    """Raise with every per-persona reason; ``persona`` is set when only one persona reported."""
    reason = "; ".join(f"{name}: {why}" for name, why in reasons)
    trace.unavailable(reason)
    names = {name for name, _ in reasons}
    raise error_cls(resource_id, reason, persona=names.pop() if len(names) == 1 else None)


# ---------------------------------------------------------------------------
#  Resolver
# ---------------------------------------------------------------------------

class ResourceResolver:
    """Resolves YouTube resources over a ``Transport``.

    Holds no per-call state, so one instance serves concurrent calls.
    """

    def __init__(self, transport: Transport):
        self._transport = transport

    # -- watch page ---------------------------------------------------------

    async def _fetch_watch_page(self, video_id: str) -> tuple[WatchPage, ResolutionTrace]:
        trace = ResolutionTrace(video_id, "watch_page")
        request = request_builder.build_watch_page(video_id)
        last_error = None

        for _ in range(settings.WATCH_PAGE_ATTEMPTS):
            trace.attempt(str(last_error or ""))
            try:
                raw = await self._transport.exchange(request)
            except NetworkError as e:
                logger.warning("Watch page %s attempt %d: %s", video_id, trace.attempts, e)
                last_error = e
                continue

            page = parse_watch_page(raw.decode("utf-8", errors="replace"))
            if page is None:
                logger.warning("Watch page %s attempt %d did not parse", video_id, trace.attempts)
                last_error = None
                continue

            if not page.is_available:
                trace.unavailable()
                raise VideoUnavailable(video_id, "watch page reports the video as unavailable")
            trace.resolved()
            return page, trace

        trace.failed(str(last_error or "unparsable page"))
        raise TransientFetchFailure(
            video_id, trace.attempts,
            f"Video watch page for '{video_id}' is broken after {trace.attempts} attempts. "
            "Please try again in a few minutes.",
        ) from last_error

    async def resolve_watch_page(self, video_id: str) -> ResolvedResource:
        page, trace = await self._fetch_watch_page(video_id)
        video = None
        title = ""
        if page.player_response is not None and page.player_response.find("videoDetails") is not None:
            try:
                video = video_details(page.player_response, page.signature_timestamp)
                title = video.title
            except MalformedResponse as e:
                raise e.with_context(resource_id=video_id) from e
        logger.info("Resolved watch page %s in %d attempt(s)", video_id, trace.attempts)
        return ResolvedResource(
            identifier=video_id,
            kind="watch_page",
            availability=Availability.available(),
            title=title,
            video=video,
        )

    async def fetch_signature_timestamp(self, video_id: str) -> str | None:
        """STS from the watch page; None when the page carries none.

        Watch page failures propagate (TransientFetchFailure / VideoUnavailable).
        """
        page, _ = await self._fetch_watch_page(video_id)
        return page.signature_timestamp

    # -- player ---------------------------------------------------------------

    async def resolve_player_metadata(
        self,
        video_id: str,
        persona_order: "list[ClientPersona] | tuple | None" = None,
        signature_timestamp: str | None = None,
    ) -> ResolvedResource:
        """Try each persona once, in order; the first playable response wins."""
        personas = tuple(persona_order or DEFAULT_PLAYER_ORDER)
        trace = ResolutionTrace(video_id, "player")
        reasons = []
        last_error = None
        sts_looked_up = signature_timestamp is not None
        sts_error = None

        for persona in personas:
            trace.attempt(persona.name)

            sts = None
            if persona.requires_signature_timestamp:
                if not sts_looked_up:
                    sts_looked_up = True
                    try:
                        signature_timestamp = await self.fetch_signature_timestamp(video_id)
                    except (TransientFetchFailure, VideoUnavailable) as e:
                        logger.warning("No signature timestamp for %s: %s", video_id, e)
                        sts_error = e
                sts = signature_timestamp
                if sts is None:
                    logger.info("Skipping persona %s for %s: no signature timestamp", persona, video_id)
                    if isinstance(sts_error, VideoUnavailable):
                        reasons.append((persona.name, sts_error.reason))
                    else:
                        last_error = sts_error or TransientFetchFailure(
                            video_id, trace.attempts, "watch page carries no signature timestamp",
                        )
                    continue

            request = request_builder.build(persona, "player", video_id=video_id, signature_timestamp=sts)
            try:
                raw = await self._transport.exchange(request)
            except NetworkError as e:
                logger.warning("Player %s via %s failed: %s", video_id, persona, e)
                last_error = e
                continue

            response = loads(raw)
            if response is None or response.kind is not ValueKind.OBJECT:
                logger.warning("Player %s via %s: undecodable body", video_id, persona)
                last_error = TransientFetchFailure(video_id, trace.attempts, "undecodable player response")
                continue

            status = playability(response)
            if not status.is_available:
                logger.info("Player %s unavailable via %s: %s", video_id, persona, status.reason)
                reasons.append((persona.name, status.reason))
                continue

            try:
                video = video_details(response, sts)
            except MalformedResponse as e:
                trace.failed(e.field_path)
                raise e.with_context(resource_id=video_id, persona=persona.name) from e

            trace.resolved(persona.name)
            return ResolvedResource(
                identifier=video_id,
                kind="player",
                availability=status,
                title=video.title,
                persona=persona.name,
                video=video,
            )

        if reasons:
            _raise_unavailable(VideoUnavailable, video_id, reasons, trace)
        trace.failed(str(last_error))
        raise TransientFetchFailure(video_id, trace.attempts) from last_error

    # -- channel --------------------------------------------------------------

    async def _browse_id_for(self, locator: ChannelLocator, persona: ClientPersona) -> str | None:
        if locator.kind is LocatorKind.ID:
            return locator.value
        request = request_builder.build(
            persona, "resolve_url", url=f"{settings.YOUTUBE_BASE_URL}{locator.resolve_path}",
        )
        try:
            raw = await self._transport.exchange(request)
        except NetworkError as e:
            if e.status == 404:
                return None
            raise
        response = loads(raw)
        if response is None:
            return None
        browse_id = response.find("endpoint", "browseEndpoint", "browseId")
        return browse_id.string() if browse_id is not None else None

    async def resolve_channel_metadata(
        self,
        locator: "ChannelLocator | str",
        persona_order: "list[ClientPersona] | tuple | None" = None,
    ) -> ResolvedResource:
        if isinstance(locator, str):
            locator = ChannelLocator.parse(locator)
        personas = tuple(persona_order or DEFAULT_CHANNEL_ORDER)
        trace = ResolutionTrace(locator.value, "channel")
        reasons = []
        last_error = None

        for persona in personas:
            trace.attempt(persona.name)
            try:
                browse_id = await self._browse_id_for(locator, persona)
                if browse_id is None:
                    reasons.append((persona.name, f"{locator.resolve_path} did not resolve to a channel"))
                    continue
                request = request_builder.build(
                    persona, "browse", browse_id=browse_id, params=settings.CHANNEL_ABOUT_PARAMS,
                )
                raw = await self._transport.exchange(request)
            except NetworkError as e:
                logger.warning("Channel %s via %s failed: %s", locator.value, persona, e)
                last_error = e
                continue

            response = loads(raw)
            if response is None or response.kind is not ValueKind.OBJECT:
                last_error = TransientFetchFailure(locator.value, trace.attempts, "undecodable browse response")
                continue

            alert = next(
                (
                    _text(a.find("alertRenderer", "text"))
                    for a in _array(response.find("alerts"))
                    if a.find("alertRenderer") is not None
                ),
                None,
            )
            if alert is not None:
                logger.info("Channel %s unavailable via %s: %s", locator.value, persona, alert)
                reasons.append((persona.name, alert))
                continue

            try:
                channel = channel_details(response)
            except MalformedResponse as e:
                trace.failed(e.field_path)
                raise e.with_context(resource_id=locator.value, persona=persona.name) from e

            trace.resolved(persona.name)
            return ResolvedResource(
                identifier=channel.channel_id,
                kind="channel",
                availability=Availability.available(),
                title=channel.title,
                persona=persona.name,
                channel=channel,
            )

        if reasons:
            _raise_unavailable(ChannelUnavailable, locator.value, reasons, trace)
        trace.failed(str(last_error))
        raise TransientFetchFailure(locator.value, trace.attempts) from last_error


def channel_details(response: JsonView) -> ChannelDetails:
    metadata = response.require_path("metadata", "channelMetadataRenderer")
    channel_id = metadata.require("externalId").string()
    title = metadata.require("title").string()
    if channel_id is None or title is None:
        raise MalformedResponse(metadata.path_str, "channelMetadataRenderer.externalId/title are not strings")

    handle = None
    vanity = metadata.find("vanityChannelUrl")
    if vanity is not None and vanity.string():
        match = re.search(r"/@([^/?#]+)", vanity.string())
        handle = match.group(1) if match else None

    header = response.find("header", "c4TabbedHeaderRenderer")
    video_count = subscriber_count = None
    banners = ()
    if header is not None:
        videos_text = _text(header.find("videosCountText"))
        if videos_text:
            video_count = _parse_digits(videos_text) or 0
        subscribers_text = _text(header.find("subscriberCountText"))
        if subscribers_text:
            subscriber_count = _parse_count_string(subscribers_text.split(" ")[0])
        banners = _thumbnails(header.find("banner", "thumbnails"))

    return ChannelDetails(
        channel_id=channel_id,
        title=title,
        handle=handle,
        description=_text(metadata.find("description")),
        video_count=video_count,
        subscriber_count=subscriber_count,
        thumbnails=_thumbnails(metadata.find("avatar", "thumbnails")),
        banners=banners,
    )
