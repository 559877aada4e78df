"""
Error taxonomy for the YouTube resolvers and comment pagination.

Every error carries enough context (resource id, persona name, field path)
to diagnose an upstream shape change without a raw payload capture.
"""


class YouTubeError(Exception):
    """Base class for every error raised by the YouTube scrapers."""


class NetworkError(YouTubeError):
    """The transport could not complete an exchange (connection error or non-2xx)."""

    def __init__(self, url: str, status: int | None = None, message: str = ""):
        self.url = url
        self.status = status
        detail = message or (f"HTTP {status}" if status is not None else "request failed")
        super().__init__(f"{detail} ({url})")


class TransientFetchFailure(YouTubeError):
    """The response never parsed into a recognizable shape. Retry later."""

    def __init__(self, resource_id: str, attempts: int, message: str = ""):
        self.resource_id = resource_id
        self.attempts = attempts
        super().__init__(
            message
            or f"Could not fetch '{resource_id}' after {attempts} attempt(s). "
            "Please try again in a few minutes."
        )


class ResourceUnavailable(YouTubeError):
    """Upstream reports the resource as gone, private or restricted. Terminal."""

    def __init__(self, resource_id: str, reason: str = "", persona: str | None = None):
        self.resource_id = resource_id
        self.reason = reason
        self.persona = persona
        msg = f"'{resource_id}' is not available"
        if persona:
            msg += f" (persona {persona})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class VideoUnavailable(ResourceUnavailable):
    pass


class ChannelUnavailable(ResourceUnavailable):
    pass


class MalformedResponse(YouTubeError):
    """The response parsed but broke an expected invariant (API shape drift)."""

    def __init__(
        self,
        field_path: str,
        message: str = "",
        resource_id: str | None = None,
        persona: str | None = None,
    ):
        self.field_path = field_path
        self.resource_id = resource_id
        self.persona = persona
        self.detail = message
        context = []
        if resource_id:
            context.append(f"resource '{resource_id}'")
        if persona:
            context.append(f"persona {persona}")
        msg = message or f"Unexpected response shape at '{field_path}'"
        if context:
            msg += f" [{', '.join(context)}]"
        super().__init__(msg)

    def with_context(self, resource_id=None, persona=None) -> "MalformedResponse":
        """Copy of this error (same class) tagged with the resource and persona being resolved."""
        return type(self)(
            self.field_path, self.detail,
            resource_id=self.resource_id or resource_id,
            persona=self.persona or persona,
        )


class FieldMissing(MalformedResponse):
    """A field the caller asserted must exist is absent or null."""

    def __init__(
        self,
        field_path: str,
        message: str = "",
        resource_id: str | None = None,
        persona: str | None = None,
    ):
        super().__init__(
            field_path, message or f"Required field '{field_path}' is missing",
            resource_id=resource_id, persona=persona,
        )


class UnsupportedParameter(YouTubeError):
    """A persona was asked for a request or parameter it cannot honor."""

    def __init__(self, persona: str, parameter: str, message: str = ""):
        self.persona = persona
        self.parameter = parameter
        super().__init__(
            message or f"Persona {persona} does not support parameter '{parameter}'"
        )
