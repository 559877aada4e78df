"""Tests for scrapers/models.py and the small parsing helpers in utils/common.py."""

import pytest


class TestChannelLocator:
    @pytest.mark.parametrize("raw, kind, value", [
        ("UCuAXFkgsw1L7xaCfnd5JJOw", "id", "UCuAXFkgsw1L7xaCfnd5JJOw"),
        ("@mkbhd", "handle", "mkbhd"),
        ("https://www.youtube.com/channel/UCuAXFkgsw1L7xaCfnd5JJOw/videos", "id", "UCuAXFkgsw1L7xaCfnd5JJOw"),
        ("https://www.youtube.com/@mkbhd", "handle", "mkbhd"),
        ("youtube.com/c/LinusTechTips", "slug", "LinusTechTips"),
        ("https://m.youtube.com/user/pewdiepie", "user", "pewdiepie"),
    ])
    def test_parse(self, raw, kind, value):
        from scrapers.models import ChannelLocator

        locator = ChannelLocator.parse(raw)
        assert locator.kind.value == kind
        assert locator.value == value

    @pytest.mark.parametrize("raw", ["", "   ", "hello world", "https://example.com/@x", "UCshort"])
    def test_parse_rejects(self, raw):
        from scrapers.models import ChannelLocator

        with pytest.raises(ValueError):
            ChannelLocator.parse(raw)

    def test_resolve_path(self):
        from scrapers.models import ChannelLocator, LocatorKind

        assert ChannelLocator(LocatorKind.HANDLE, "x_y").resolve_path == "/@x_y"
        assert ChannelLocator(LocatorKind.SLUG, "abc").resolve_path == "/c/abc"
        assert ChannelLocator(LocatorKind.USER, "abc").resolve_path == "/user/abc"


class TestComment:
    def test_text_and_lines(self):
        from scrapers.models import Comment

        comment = Comment(id="c", text_segments=("a", "\n", "\n", "b @x"))
        assert comment.text == "a\n\nb @x"
        assert comment.lines == ["a", "", "b @x"]

    def test_batch_is_last(self):
        from scrapers.models import CommentBatch

        assert CommentBatch().is_last
        assert not CommentBatch(next_token="t").is_last


class TestCountParsing:
    @pytest.mark.parametrize("text, expected", [
        ("1.2M", 1_200_000),
        ("3K", 3000),
        ("1,234", 1234),
        ("42", 42),
        ("", 0),
        ("n/a", 0),
    ])
    def test_parse_count_string(self, text, expected):
        from utils.common import _parse_count_string

        assert _parse_count_string(text) == expected

    def test_parse_digits(self):
        from utils.common import _parse_digits

        assert _parse_digits("1,234 videos") == 1234
        assert _parse_digits("No videos") is None
        assert _parse_digits("\u00b2") is None
        assert _parse_digits("1\u00b23 subscribers") == 13
