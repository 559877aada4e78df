"""
Builds InnerTube request descriptors for a client persona. Pure, no I/O.
"""

from config import settings
from config.personas import ClientPersona
from scrapers.errors import UnsupportedParameter
from scrapers.transport import RequestDescriptor

# request type -> (endpoint, resource key in the body)
REQUEST_TYPES = {
    "player": ("player", "videoId"),
    "next": ("next", None),
    "browse": ("browse", "browseId"),
    "resolve_url": ("navigation/resolve_url", "url"),
}

_PARAM_KEYS = {
    "video_id": "videoId",
    "continuation": "continuation",
    "browse_id": "browseId",
    "url": "url",
    "params": "params",
}

_ALLOWED_PARAMS = {
    "player": {"video_id", "signature_timestamp"},
    "next": {"video_id", "continuation"},
    "browse": {"browse_id", "params"},
    "resolve_url": {"url"},
}


def client_context(persona: ClientPersona) -> dict:
    """The ``context`` object identifying ``persona`` to InnerTube."""
    client = {
        "clientName": persona.client_name,
        "clientVersion": persona.version,
        "hl": settings.HL,
        "gl": settings.GL,
        "utcOffsetMinutes": settings.UTC_OFFSET_MINUTES,
    }
    client.update(persona.platform_hints)
    context = {"client": client}
    if persona.third_party:
        context["thirdParty"] = dict(persona.third_party)
    return context


def build(persona: ClientPersona, request_type: str, **params) -> RequestDescriptor:
    """Build the POST for ``request_type`` as sent by ``persona``.

    ``next`` takes either ``video_id`` (watch-next page) or
    ``continuation`` (a pagination step), never both.
    """
    if request_type not in REQUEST_TYPES:
        raise ValueError(f"Unknown InnerTube request type: {request_type!r}")
    if not persona.supports(request_type):
        raise UnsupportedParameter(
            persona.name, request_type,
            f"Persona {persona.name} cannot issue '{request_type}' requests",
        )

    params = {k: v for k, v in params.items() if v is not None}
    unknown = set(params) - _ALLOWED_PARAMS[request_type]
    if unknown:
        raise UnsupportedParameter(persona.name, sorted(unknown)[0])

    sts = params.pop("signature_timestamp", None)
    if sts is not None and not persona.requires_signature_timestamp:
        raise UnsupportedParameter(
            persona.name, "signature_timestamp",
            f"Persona {persona.name} cannot honor a signature timestamp",
        )
    if request_type == "player" and persona.requires_signature_timestamp and sts is None:
        raise UnsupportedParameter(
            persona.name, "signature_timestamp",
            f"Persona {persona.name} requires a signature timestamp",
        )

    endpoint, resource_key = REQUEST_TYPES[request_type]
    if request_type == "next":
        given = [k for k in ("video_id", "continuation") if k in params]
        if len(given) != 1:
            raise UnsupportedParameter(
                persona.name, "video_id|continuation",
                "A 'next' request takes exactly one of video_id or continuation",
            )
        resource_key = _PARAM_KEYS[given[0]]

    body = {_PARAM_KEYS[k]: v for k, v in params.items()}
    if resource_key not in body:
        raise UnsupportedParameter(
            persona.name, resource_key,
            f"'{request_type}' request is missing '{resource_key}'",
        )
    body["context"] = client_context(persona)
    if sts is not None:
        body["playbackContext"] = {
            "contentPlaybackContext": {"signatureTimestamp": str(sts)},
        }

    return RequestDescriptor(
        method="POST",
        url=f"{settings.INNERTUBE_BASE_URL}/{endpoint}?prettyPrint=false",
        headers=persona_headers(persona),
        body=body,
    )


def persona_headers(persona: ClientPersona) -> dict:
    headers = {
        "Content-Type": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
        "X-YouTube-Client-Name": str(persona.client_id),
        "X-YouTube-Client-Version": persona.version,
        "Origin": settings.YOUTUBE_BASE_URL,
    }
    if persona.user_agent:
        headers["User-Agent"] = persona.user_agent
    return headers


def build_watch_page(video_id: str) -> RequestDescriptor:
    """The plain GET for a watch page (not persona-specific)."""
    return RequestDescriptor(
        method="GET",
        url=settings.WATCH_PAGE_URL.format(video_id=video_id),
        headers={
            "User-Agent": settings.USER_AGENT,
            "Accept-Language": "en-US,en;q=0.9",
        },
    )
