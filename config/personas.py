"""
Client persona registry.

Each persona impersonates one InnerTube client. The upstream API decides
availability and payload shape by the declared client, so resolvers pick
personas from here in a fixed priority order.
"""

from dataclasses import dataclass, field
from types import MappingProxyType

MOBILE_USER_AGENT = "Mozilla/5.0 (Linux; Android 10; SM-G981B) gzip"


@dataclass(frozen=True)
class ClientPersona:
    name: str
    client_name: str
    version: str
    client_id: int
    platform_hints: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({}), compare=False,
    )
    user_agent: str | None = None
    supports_age_restricted: bool = False
    requires_signature_timestamp: bool = False
    supported_requests: frozenset = frozenset({"player", "next", "browse", "resolve_url"})
    third_party: MappingProxyType | None = field(default=None, compare=False)

    def supports(self, request_type: str) -> bool:
        return request_type in self.supported_requests

    def __str__(self) -> str:
        return self.name


WEB = ClientPersona(
    name="WEB",
    client_name="WEB",
    version="2.20250101.00.00",
    client_id=1,
)

# Mobile web needs no signature deciphering, so it goes first whenever it is enough.
MWEB = ClientPersona(
    name="MWEB",
    client_name="MWEB",
    version="2.20230420.05.00",
    client_id=2,
    platform_hints=MappingProxyType({"androidSdkVersion": 30}),
    # Sometimes required when impersonating Android
    user_agent=MOBILE_USER_AGENT,
)

TV_EMBEDDED = ClientPersona(
    name="TVHTML5_SIMPLY_EMBEDDED_PLAYER",
    client_name="TVHTML5_SIMPLY_EMBEDDED_PLAYER",
    version="2.0",
    client_id=85,
    supports_age_restricted=True,
    requires_signature_timestamp=True,
    supported_requests=frozenset({"player"}),
    third_party=MappingProxyType({"embedUrl": "https://www.youtube.com"}),
)

PERSONAS = MappingProxyType({p.name: p for p in (WEB, MWEB, TV_EMBEDDED)})

DEFAULT_PLAYER_ORDER = (MWEB, TV_EMBEDDED)
DEFAULT_CHANNEL_ORDER = (MWEB, WEB)
COMMENT_TOKEN_PERSONA = MWEB
COMMENT_BATCH_PERSONA = WEB


def get_persona(name: str) -> ClientPersona:
    """Look up a persona by name (case-insensitive)."""
    try:
        return PERSONAS[name.upper()]
    except KeyError:
        raise KeyError(f"Unknown client persona: {name!r}") from None
