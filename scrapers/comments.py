"""
Continuation-based comment pagination over InnerTube ``/next``.

Flow:
  1. POST /next with the video id  -> comment section continuation token
  2. POST /next with the token     -> one CommentBatch (+ next token)
  3. repeat 2 until no token is returned

YouTube sends comment content in two shapes:
  (a) legacy: commentThreadRenderer.comment.commentRenderer with text runs
  (b) modern: commentViewModel in the thread list + commentEntityPayload in
      frameworkUpdates, joined by the comment's entity key
"""

import logging
import time

from config import settings
from config.personas import COMMENT_BATCH_PERSONA, COMMENT_TOKEN_PERSONA
from scrapers import request_builder
from scrapers.errors import MalformedResponse, TransientFetchFailure
from scrapers.models import Comment, CommentBatch
from scrapers.transport import Transport
from utils.common import _parse_count_string, _parse_digits
from utils.reader import JsonView, ValueKind, loads
from utils.rich_text import CommandRun, reconstruct, runs_from_text_runs

logger = logging.getLogger(__name__)

_ENTITY_MUTATIONS_PATH = "frameworkUpdates.entityBatchUpdate.mutations"


def _array(view: JsonView | None) -> list[JsonView]:
    return view.array_or_empty() if view is not None else []


def _string(view: JsonView | None) -> str:
    if view is None:
        return ""
    return view.string() or ""


def _token_id(token: str) -> str:
    return token if len(token) <= 24 else f"{token[:24]}..."


def _check_deadline(deadline: float, stage: str):
    if deadline and time.monotonic() > deadline:
        raise TimeoutError(f"Deadline reached before {stage}")


# ---------------------------------------------------------------------------
#  Continuation token lookup
# ---------------------------------------------------------------------------

def _continuation_command_token(node: JsonView | None) -> str | None:
    """Token from ``continuationItemRenderer``: endpoint first, then its button."""
    if node is None:
        return None
    for path in (
        ("continuationEndpoint", "continuationCommand", "token"),
        ("button", "buttonRenderer", "command", "continuationCommand", "token"),
    ):
        token = node.find(*path)
        if token is not None and token.string():
            return token.string()
    return None


def _section_token(section: JsonView) -> str | None:
    for content in _array(section.find("contents")):
        token = _continuation_command_token(content.find("continuationItemRenderer"))
        if token:
            return token
    for cont in _array(section.find("continuations")):
        token = cont.find("nextContinuationData", "continuation")
        if token is not None and token.string():
            return token.string()
    return None


def find_comments_continuation(data: JsonView) -> str | None:
    """Locate the comment-section entry token in a watch-next response.

    Paths tried, in order:
      engagementPanels[].engagementPanelSectionListRenderer.content
        .sectionListRenderer.contents[].itemSectionRenderer
      contents.twoColumnWatchNextResults.results.results.contents[].itemSectionRenderer
    matching sectionIdentifier == "comment-item-section", then a bounded
    recursive search.
    """
    sections = []
    for panel in _array(data.find("engagementPanels")):
        contents = panel.find(
            "engagementPanelSectionListRenderer", "content", "sectionListRenderer", "contents",
        )
        sections.extend(c.find("itemSectionRenderer") for c in _array(contents))
    watch_contents = data.find(
        "contents", "twoColumnWatchNextResults", "results", "results", "contents",
    )
    sections.extend(c.find("itemSectionRenderer") for c in _array(watch_contents))

    for section in sections:
        if section is None:
            continue
        if _string(section.find("sectionIdentifier")) != settings.COMMENT_SECTION_ID:
            continue
        token = _section_token(section)
        if token:
            return token

    return _find_continuation_recursive(data.value)


def _find_continuation_recursive(obj, depth=0, in_section=False) -> str | None:
    """Recursively search JSON for a comments continuation token.

    Tokens only count below a node marked as the comment section; other
    sections (related videos, chapters) carry their own continuations.
    """
    if depth > 15:
        return None

    if isinstance(obj, dict):
        in_section = in_section or obj.get("sectionIdentifier") == settings.COMMENT_SECTION_ID

        if in_section and isinstance(obj.get("continuationCommand"), dict):
            token = obj["continuationCommand"].get("token")
            if isinstance(token, str) and token:
                return token

        for key, value in obj.items():
            if key in (
                "contents", "content", "engagementPanels", "engagementPanelSectionListRenderer",
                "sectionListRenderer", "itemSectionRenderer", "continuationItemRenderer",
                "continuationEndpoint", "twoColumnWatchNextResults", "results",
            ):
                result = _find_continuation_recursive(value, depth + 1, in_section)
                if result:
                    return result

    elif isinstance(obj, list):
        for item in obj:
            result = _find_continuation_recursive(item, depth + 1, in_section)
            if result:
                return result

    return None


# ---------------------------------------------------------------------------
#  Batch decoding
# ---------------------------------------------------------------------------

def build_entity_map(data: JsonView) -> dict[str, JsonView]:
    """entityKey -> commentEntityPayload from frameworkUpdates."""
    entity_map = {}
    mutations = data.find("frameworkUpdates", "entityBatchUpdate", "mutations")
    for mutation in _array(mutations):
        payload = mutation.find("payload", "commentEntityPayload")
        if payload is None:
            continue
        key = _string(mutation.find("entityKey")) or _string(payload.find("key"))
        if key:
            entity_map[key] = payload
    return entity_map


def _unwrap_view_model(node: JsonView) -> JsonView:
    # Threads nest commentViewModel.commentViewModel, reply items do not
    inner = node.find("commentViewModel")
    return inner if inner is not None and inner.kind is ValueKind.OBJECT else node


def _segments(text: str, runs: list[CommandRun], path: str) -> tuple:
    try:
        return tuple(reconstruct(text, runs))
    except MalformedResponse as e:
        raise MalformedResponse(f"{path}.{e.field_path}", e.detail) from e


def _decode_entity(view_model: JsonView, entity_map: dict[str, JsonView]) -> dict:
    key = _string(view_model.find("commentKey"))
    if not key:
        # Older view models only carry the comment id
        comment_id = _string(view_model.find("commentId"))
        key = next(
            (k for k, p in entity_map.items()
             if _string(p.find("properties", "commentId")) == comment_id),
            comment_id,
        )
    if not key:
        raise MalformedResponse(f"{view_model.path_str}.commentKey")
    entity = entity_map.get(key)
    if entity is None:
        raise MalformedResponse(
            f"{_ENTITY_MUTATIONS_PATH}[entityKey={key}]",
            f"Comment entity '{key}' referenced at {view_model.path_str} "
            "is missing from the entity payloads",
        )

    props = entity.require("properties")
    content = props.require("content")
    text = content.require("content").string()
    if text is None:
        raise MalformedResponse(f"{content.path_str}.content", "Comment content is not a string")
    runs = []
    for run in _array(content.find("commandRuns")):
        length = run.require("length").integer()
        if length is None:
            raise MalformedResponse(f"{run.path_str}.length", "Command run length is not an integer")
        # startIndex is omitted when it is 0
        start = run.find("startIndex")
        runs.append(CommandRun((start.integer() or 0) if start is not None else 0, length))

    toolbar = entity.find("toolbar")
    likes = _string(toolbar.find("likeCountNotliked")) if toolbar is not None else ""
    if not likes and toolbar is not None:
        likes = _string(toolbar.find("likeCountLiked"))
    reply_level = props.find("replyLevel")

    return {
        "id": props.require("commentId").string() or key,
        "text_segments": _segments(text, runs, content.path_str),
        "like_count": _parse_count_string(likes),
        "author": _string(entity.find("author", "displayName")),
        "author_channel_id": _string(entity.find("author", "channelId")),
        "published_time": _string(props.find("publishedTime")),
        "is_pinned": bool(_string(view_model.find("pinnedText"))),
        "is_reply": bool(reply_level is not None and (reply_level.integer() or 0) > 0),
    }


def _decode_renderer(renderer: JsonView) -> dict:
    comment_id = renderer.require("commentId").string()
    if not comment_id:
        raise MalformedResponse(f"{renderer.path_str}.commentId", "commentId is not a string")

    content = renderer.find("contentText")
    runs_view = content.find("runs") if content is not None else None
    if runs_view is not None and runs_view.kind is ValueKind.ARRAY:
        text, runs = runs_from_text_runs(runs_view.value)
    elif content is not None:
        text, runs = _string(content.find("simpleText")), []
    else:
        text, runs = "", []

    likes = _string(renderer.find("voteCount", "simpleText"))
    if likes:
        like_count = _parse_count_string(likes)
    else:
        label = renderer.find(
            "actionButtons", "commentActionButtonsRenderer", "likeButton",
            "toggleButtonRenderer", "accessibilityData", "accessibilityData", "label",
        )
        like_count = _parse_digits(_string(label)) or 0

    author = renderer.find("authorText")
    author_name = _string(author.find("simpleText")) if author is not None else ""
    if not author_name and author is not None:
        author_name = "".join(_string(r.find("text")) for r in _array(author.find("runs")))
    published = renderer.find("publishedTimeText")
    published_time = ""
    if published is not None:
        published_time = _string(published.find("simpleText")) or _string(
            published.find("runs", 0, "text")
        )

    return {
        "id": comment_id,
        "text_segments": _segments(text, runs, f"{renderer.path_str}.contentText"),
        "like_count": like_count,
        "author": author_name,
        "author_channel_id": _string(renderer.find("authorEndpoint", "browseEndpoint", "browseId")),
        "published_time": published_time,
        "is_pinned": renderer.find("pinnedCommentBadge") is not None,
        "is_reply": False,
    }


def _replies_token(thread: JsonView) -> str | None:
    replies = thread.find("replies", "commentRepliesRenderer")
    if replies is None:
        return None
    for content in _array(replies.find("contents")):
        token = _continuation_command_token(content.find("continuationItemRenderer"))
        if token:
            return token
    token = replies.find("viewReplies", "buttonRenderer", "command", "continuationCommand", "token")
    return token.string() if token is not None else None


def decode_comment(item: JsonView, entity_map: dict[str, JsonView], replies_token=None,
                   is_reply=False) -> Comment:
    """Decode one thread or reply item. Entity shape first when the map is present."""
    view_model = item.find("commentViewModel")
    renderer = item.find("commentRenderer") or item.find("comment", "commentRenderer")

    if entity_map and view_model is not None:
        fields = _decode_entity(_unwrap_view_model(view_model), entity_map)
    elif renderer is not None:
        fields = _decode_renderer(renderer)
    elif view_model is not None:
        raise MalformedResponse(
            _ENTITY_MUTATIONS_PATH,
            f"Comment view model at {view_model.path_str} has no entity payloads to join",
        )
    else:
        raise MalformedResponse(f"{item.path_str}.comment", "Comment item carries no comment")

    fields["is_reply"] = fields["is_reply"] or is_reply
    return Comment(replies_token=replies_token, **fields)


def parse_comment_batch(data: JsonView) -> CommentBatch:
    """Decode one ``/next`` continuation response into a CommentBatch."""
    endpoints = data.require("onResponseReceivedEndpoints").array()
    if endpoints is None:
        raise MalformedResponse("onResponseReceivedEndpoints", "Expected an array of endpoints")
    entity_map = build_entity_map(data)

    comments = []
    next_token = None
    for endpoint in endpoints:
        action = endpoint.find("reloadContinuationItemsCommand") or endpoint.find(
            "appendContinuationItemsAction"
        )
        if action is None:
            continue
        for item in _array(action.find("continuationItems")):
            thread = item.find("commentThreadRenderer")
            if thread is not None:
                comments.append(decode_comment(thread, entity_map, _replies_token(thread)))
            elif item.find("commentViewModel") is not None or item.find("commentRenderer") is not None:
                comments.append(decode_comment(item, entity_map, is_reply=True))
            elif item.find("continuationItemRenderer") is not None:
                token = _continuation_command_token(item.find("continuationItemRenderer"))
                if token:
                    next_token = token

    return CommentBatch(comments=tuple(comments), next_token=next_token)


# ---------------------------------------------------------------------------
#  Pagination engine
# ---------------------------------------------------------------------------

class CommentPaginator:
    """Lazy, strictly sequential comment pagination.

    Sequences are not restartable mid-stream; start again from
    ``paginate(video_id)`` to re-derive the entry token. Cancelling the
    consuming task aborts the in-flight request and yields nothing from it.
    """

    def __init__(self, transport: Transport):
        self._transport = transport

    async def _post(self, request, resource_id: str) -> JsonView:
        data = loads(await self._transport.exchange(request))
        if data is None or data.kind is not ValueKind.OBJECT:
            raise TransientFetchFailure(
                resource_id, 1, f"Response for '{resource_id}' is not a JSON object",
            )
        return data

    async def fetch_initial_token(self, video_id: str) -> str | None:
        """Entry token for the comment section; None when comments are off."""
        request = request_builder.build(COMMENT_TOKEN_PERSONA, "next", video_id=video_id)
        data = await self._post(request, video_id)
        token = find_comments_continuation(data)
        if token is None:
            logger.info("No comment section for %s (comments may be disabled)", video_id)
        return token

    async def fetch_batch(self, token: str) -> CommentBatch:
        request = request_builder.build(COMMENT_BATCH_PERSONA, "next", continuation=token)
        data = await self._post(request, _token_id(token))
        try:
            return parse_comment_batch(data)
        except MalformedResponse as e:
            raise e.with_context(resource_id=_token_id(token), persona=COMMENT_BATCH_PERSONA.name) from e

    async def iter_batches(self, token: str | None, deadline: float = 0):
        """Batches starting at ``token``; a repeated token is a MalformedResponse."""
        seen = set()
        page = 0
        while token:
            if token in seen:
                raise MalformedResponse(
                    "continuationCommand.token",
                    f"Server reissued continuation token '{_token_id(token)}' "
                    f"after {page} page(s)",
                )
            seen.add(token)
            _check_deadline(deadline, f"page {page + 1}")

            batch = await self.fetch_batch(token)
            page += 1
            logger.debug("Page %d: %d comments, more=%s", page, len(batch.comments), not batch.is_last)
            yield batch
            token = batch.next_token

    async def paginate(self, video_id: str, deadline: float = 0):
        """All top-level comments of ``video_id``, one batch at a time."""
        _check_deadline(deadline, "token lookup")
        token = await self.fetch_initial_token(video_id)
        async for batch in self.iter_batches(token, deadline):
            for comment in batch.comments:
                yield comment

    async def paginate_replies(self, comment: Comment, deadline: float = 0):
        async for batch in self.iter_batches(comment.replies_token, deadline):
            for reply in batch.comments:
                yield reply
