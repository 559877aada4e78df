"""
Null-safe reader over InnerTube JSON.

InnerTube responses have no published schema and drift between client
personas, so every lookup returns ``None`` on absence instead of raising.
Only ``require`` raises, and it reports the full dotted path of the field.

    view = loads(raw_bytes)
    token = view.find("continuationEndpoint", "continuationCommand", "token")
    title = view.require("videoDetails").require("title").string()
"""

import json
from enum import Enum

from scrapers.errors import FieldMissing


class ValueKind(Enum):
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


def _kind_of(value) -> ValueKind:
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if isinstance(value, list):
        return ValueKind.ARRAY
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    raise TypeError(f"Not a JSON value: {type(value).__name__}")


def _render_path(path: tuple) -> str:
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else part
    return out or "$"


class JsonView:
    """Read-only view of one node in a JSON tree, remembering its path from the root."""

    __slots__ = ("_value", "_path", "kind")

    def __init__(self, value, path: tuple = ()):
        self._value = value
        self._path = path
        self.kind = _kind_of(value)

    def __repr__(self) -> str:
        return f"JsonView({self.path_str}, {self.kind.value})"

    @property
    def value(self):
        return self._value

    @property
    def path(self) -> tuple:
        return self._path

    @property
    def path_str(self) -> str:
        return _render_path(self._path)

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    # -- navigation ---------------------------------------------------------

    def get(self, key) -> "JsonView | None":
        """Child at ``key`` (str on objects, int on arrays), or None."""
        if self.kind is ValueKind.OBJECT and isinstance(key, str):
            if key not in self._value:
                return None
            child = self._value[key]
        elif self.kind is ValueKind.ARRAY and isinstance(key, int) and not isinstance(key, bool):
            if not -len(self._value) <= key < len(self._value):
                return None
            child = self._value[key]
            key = key % len(self._value)
        else:
            return None
        return JsonView(child, self._path + (key,))

    def find(self, *path) -> "JsonView | None":
        """Chained ``get``; None as soon as one step is missing."""
        node = self
        for key in path:
            node = node.get(key)
            if node is None:
                return None
        return node

    def require(self, key) -> "JsonView":
        """Like ``get`` but the caller asserts the field exists and is non-null."""
        child = self.get(key)
        if child is None or child.is_null:
            raise FieldMissing(_render_path(self._path + (key,)))
        return child

    def require_path(self, *path) -> "JsonView":
        node = self
        for key in path:
            node = node.require(key)
        return node

    def array(self) -> "list[JsonView] | None":
        if self.kind is not ValueKind.ARRAY:
            return None
        return [JsonView(v, self._path + (i,)) for i, v in enumerate(self._value)]

    def array_or_empty(self) -> "list[JsonView]":
        return self.array() or []

    # -- scalar projections -------------------------------------------------

    def string(self) -> str | None:
        return self._value if self.kind is ValueKind.STRING else None

    def integer(self) -> int | None:
        """Numbers, and strings holding an integer (InnerTube sends both)."""
        if self.kind is ValueKind.NUMBER:
            return int(self._value)
        if self.kind is ValueKind.STRING:
            try:
                return int(self._value.strip())
            except ValueError:
                return None
        return None

    def boolean(self) -> bool | None:
        return self._value if self.kind is ValueKind.BOOLEAN else None


def loads(raw) -> JsonView | None:
    """Decode a response body into a view; None when it is not JSON."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        return JsonView(json.loads(raw))
    except (json.JSONDecodeError, TypeError):
        return None

