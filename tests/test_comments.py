"""Tests for scrapers/comments.py (decoding + continuation pagination)."""

import asyncio
import time

import pytest

from fakes import (
    BlockingTransport,
    FakeTransport,
    batch_response,
    continuation_item,
    entity_mutation,
    entity_thread,
    on,
    renderer_thread,
    watch_next_response,
)

VIDEO_ID = "dQw4w9WgXcQ"


def _collect(agen):
    async def run():
        return [item async for item in agen]
    return asyncio.run(run())


class TestParseCommentBatch:
    def test_entity_comment_lines(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        data = batch_response(
            [entity_thread("abc")],
            [entity_mutation("abc", "hello\nworld", likes="12")],
        )
        batch = parse_comment_batch(JsonView(data))
        assert batch.is_last
        [comment] = batch.comments
        assert list(comment.text_segments) == ["hello", "\n", "world"]
        assert comment.lines == ["hello", "world"]
        assert comment.id == "id-abc"
        assert comment.like_count == 12
        assert comment.author == "Alice"
        assert not comment.is_reply

    def test_dangling_entity_key(self):
        from scrapers.comments import parse_comment_batch
        from scrapers.errors import MalformedResponse
        from utils.reader import JsonView

        data = batch_response([entity_thread("xyz")], [entity_mutation("abc", "hi")])
        with pytest.raises(MalformedResponse) as exc:
            parse_comment_batch(JsonView(data))
        assert "xyz" in exc.value.field_path
        assert exc.value.field_path.startswith("frameworkUpdates.entityBatchUpdate.mutations")

    def test_entity_command_runs(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        data = batch_response(
            [entity_thread("k1")],
            [entity_mutation("k1", "see\n@chan here", [{"startIndex": 4, "length": 5}])],
        )
        [comment] = parse_comment_batch(JsonView(data)).comments
        assert list(comment.text_segments) == ["see", "\n", "@chan here"]

    def test_missing_start_index_means_zero(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        data = batch_response(
            [entity_thread("k1")],
            [entity_mutation("k1", "a\nb", [{"length": 3}])],
        )
        [comment] = parse_comment_batch(JsonView(data)).comments
        assert list(comment.text_segments) == ["a\nb"]

    def test_entity_join_falls_back_to_comment_id(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        thread = {"commentThreadRenderer": {"commentViewModel": {
            "commentViewModel": {"commentId": "Ugx-42"},
        }}}
        data = batch_response([thread], [entity_mutation("opaque-key", "hi", comment_id="Ugx-42")])
        [comment] = parse_comment_batch(JsonView(data)).comments
        assert comment.id == "Ugx-42"
        assert comment.text == "hi"

    def test_renderer_shape(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        runs = [
            {"text": "nice "},
            {"text": "1:23", "navigationEndpoint": {"watchEndpoint": {}}},
            {"text": "\nbye"},
        ]
        data = batch_response([renderer_thread("c1", runs, likes="1.2K", replies_token="rep1")])
        [comment] = parse_comment_batch(JsonView(data)).comments
        assert comment.id == "c1"
        assert list(comment.text_segments) == ["nice 1:23", "\n", "bye"]
        assert comment.like_count == 1200
        assert comment.author == "@bob"
        assert comment.author_channel_id == "UCbob0000000000000000000"
        assert comment.published_time == "1 year ago"
        assert comment.replies_token == "rep1"

    def test_replies_token_and_next_token(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        data = batch_response(
            [entity_thread("a", replies_token="rep-a"), entity_thread("b")],
            [entity_mutation("a", "first"), entity_mutation("b", "second")],
            next_token="page-2",
        )
        batch = parse_comment_batch(JsonView(data))
        assert [c.replies_token for c in batch.comments] == ["rep-a", None]
        assert batch.next_token == "page-2"
        assert not batch.is_last

    def test_reply_items(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        reply = {"commentViewModel": {"commentKey": "r1", "commentId": "id-r1"}}
        data = batch_response([reply], [entity_mutation("r1", "a reply", reply_level=1)])
        [comment] = parse_comment_batch(JsonView(data)).comments
        assert comment.is_reply
        assert comment.replies_token is None

    def test_reload_action(self):
        from scrapers.comments import parse_comment_batch
        from utils.reader import JsonView

        data = batch_response(
            [entity_thread("a")], [entity_mutation("a", "x")],
            action="reloadContinuationItemsCommand",
        )
        assert len(parse_comment_batch(JsonView(data)).comments) == 1

    def test_missing_endpoints(self):
        from scrapers.comments import parse_comment_batch
        from scrapers.errors import MalformedResponse
        from utils.reader import JsonView

        with pytest.raises(MalformedResponse) as exc:
            parse_comment_batch(JsonView({"responseContext": {}}))
        assert exc.value.field_path == "onResponseReceivedEndpoints"


class TestFindCommentsContinuation:
    def test_engagement_panel(self):
        from scrapers.comments import find_comments_continuation
        from utils.reader import JsonView

        assert find_comments_continuation(JsonView(watch_next_response("tokA"))) == "tokA"

    def test_two_column_results(self):
        from scrapers.comments import find_comments_continuation
        from utils.reader import JsonView

        data = {"contents": {"twoColumnWatchNextResults": {"results": {"results": {"contents": [
            {"videoPrimaryInfoRenderer": {}},
            {"itemSectionRenderer": {
                "sectionIdentifier": "comment-item-section",
                "contents": [{"continuationItemRenderer": {
                    "continuationEndpoint": {"continuationCommand": {"token": "tokB"}},
                }}],
            }},
        ]}}}}}
        assert find_comments_continuation(JsonView(data)) == "tokB"

    def test_comments_disabled(self):
        from scrapers.comments import find_comments_continuation
        from utils.reader import JsonView

        assert find_comments_continuation(JsonView({"contents": {}})) is None

    def test_other_section_token_is_ignored(self):
        from scrapers.comments import find_comments_continuation
        from utils.reader import JsonView

        data = {"engagementPanels": [{"engagementPanelSectionListRenderer": {"content": {
            "sectionListRenderer": {"contents": [{"itemSectionRenderer": {
                "sectionIdentifier": "related-items",
                "contents": [continuation_item("R" * 60)],
            }}]},
        }}}]}
        assert find_comments_continuation(JsonView(data)) is None

    def test_recursive_search_inside_comment_section(self):
        from scrapers.comments import find_comments_continuation
        from utils.reader import JsonView

        # Comment section nested where neither direct path looks
        data = {"contents": [{"sectionListRenderer": {"contents": [
            {"itemSectionRenderer": {
                "sectionIdentifier": "related-items",
                "contents": [continuation_item("R" * 60)],
            }},
            {"itemSectionRenderer": {
                "sectionIdentifier": "comment-item-section",
                "contents": [continuation_item("short")],
            }},
        ]}}]}
        assert find_comments_continuation(JsonView(data)) == "short"


class TestCommentPaginator:
    def test_paginate_two_batches_in_order(self):
        from scrapers.comments import CommentPaginator

        transport = (
            FakeTransport()
            .route(on("next", videoId=VIDEO_ID), watch_next_response("tokA"))
            .route(on("next", continuation="tokA"), batch_response(
                [entity_thread("c1"), entity_thread("c2")],
                [entity_mutation("c1", "one"), entity_mutation("c2", "two")],
                next_token="tokB",
            ))
            .route(on("next", continuation="tokB"), batch_response(
                [entity_thread("c3")], [entity_mutation("c3", "three")],
            ))
        )
        comments = _collect(CommentPaginator(transport).paginate(VIDEO_ID))
        assert [c.text for c in comments] == ["one", "two", "three"]
        assert transport.clients("next") == ["MWEB", "WEB", "WEB"]

    def test_no_comment_section_yields_nothing(self):
        from scrapers.comments import CommentPaginator

        transport = FakeTransport().route(on("next", videoId=VIDEO_ID), {"contents": {}})
        assert _collect(CommentPaginator(transport).paginate(VIDEO_ID)) == []
        assert len(transport.requests) == 1

    def test_repeated_token_is_malformed(self):
        from scrapers.comments import CommentPaginator
        from scrapers.errors import MalformedResponse

        transport = (
            FakeTransport()
            .route(on("next", continuation="tok1"), batch_response(
                [entity_thread("a")], [entity_mutation("a", "x")], next_token="tok2",
            ))
            .route(on("next", continuation="tok2"), batch_response(
                [entity_thread("b")], [entity_mutation("b", "y")], next_token="tok1",
            ))
        )
        with pytest.raises(MalformedResponse):
            _collect(CommentPaginator(transport).iter_batches("tok1"))
        assert len(transport.requests) == 2

    def test_malformed_batch_carries_context(self):
        from scrapers.comments import CommentPaginator
        from scrapers.errors import MalformedResponse

        transport = FakeTransport().route(
            on("next", continuation="tok1"),
            batch_response([entity_thread("xyz")], [entity_mutation("abc", "hi")]),
        )
        with pytest.raises(MalformedResponse) as exc:
            asyncio.run(CommentPaginator(transport).fetch_batch("tok1"))
        assert "xyz" in exc.value.field_path
        assert exc.value.persona == "WEB"
        assert exc.value.resource_id == "tok1"

    def test_missing_field_keeps_its_class_with_context(self):
        from scrapers.comments import CommentPaginator
        from scrapers.errors import FieldMissing

        transport = FakeTransport().route(on("next", continuation="tok1"), {"responseContext": {}})
        with pytest.raises(FieldMissing) as exc:
            asyncio.run(CommentPaginator(transport).fetch_batch("tok1"))
        assert exc.value.field_path == "onResponseReceivedEndpoints"
        assert exc.value.persona == "WEB"

    def test_cancel_during_batch_fetch(self):
        from scrapers.comments import CommentPaginator

        async def run():
            transport = BlockingTransport()
            received = []

            async def consume():
                async for batch in CommentPaginator(transport).iter_batches("tok1"):
                    received.append(batch)

            task = asyncio.create_task(consume())
            await transport.started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return transport, received

        transport, received = asyncio.run(run())
        assert received == []
        assert len(transport.requests) == 1

    def test_undecodable_batch(self):
        from scrapers.comments import CommentPaginator
        from scrapers.errors import TransientFetchFailure

        transport = FakeTransport().route(on("next"), "<html>oops</html>")
        with pytest.raises(TransientFetchFailure):
            asyncio.run(CommentPaginator(transport).fetch_batch("tok1"))

    def test_paginate_replies(self):
        from scrapers.comments import CommentPaginator
        from scrapers.models import Comment

        reply = {"commentViewModel": {"commentKey": "r1", "commentId": "id-r1"}}
        transport = FakeTransport().route(
            on("next", continuation="rep1"),
            batch_response([reply], [entity_mutation("r1", "a reply", reply_level=1)]),
        )
        parent = Comment(id="p", text_segments=("parent",), replies_token="rep1")
        replies = _collect(CommentPaginator(transport).paginate_replies(parent))
        assert [r.text for r in replies] == ["a reply"]
        assert replies[0].is_reply

    def test_no_replies_token_makes_no_request(self):
        from scrapers.comments import CommentPaginator
        from scrapers.models import Comment

        transport = FakeTransport()
        parent = Comment(id="p", text_segments=("parent",))
        assert _collect(CommentPaginator(transport).paginate_replies(parent)) == []
        assert transport.requests == []

    def test_deadline(self):
        from scrapers.comments import CommentPaginator

        transport = FakeTransport()
        with pytest.raises(TimeoutError):
            _collect(CommentPaginator(transport).iter_batches("tok1", deadline=time.monotonic() - 1))
        assert transport.requests == []
