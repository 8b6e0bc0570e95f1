"""Frame codec for the graphql-transport-ws feed protocol.

Inbound frames are JSON envelopes tagged by ``type``. Data frames carry a
second JSON document serialized as a string inside the envelope; that
inner message holds the list of trending tickers.
"""

from __future__ import annotations

from enum import Enum
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trendwatch.domain.errors import ProtocolParseError
from trendwatch.domain.models import Credential

SUBPROTOCOL = "graphql-transport-ws"
SUBSCRIPTION_ID = "1"
OPERATION_NAME = "SubscribeSubscription"
SUBSCRIPTION_QUERY = """
subscription SubscribeSubscription($input: SubscribeInput!) {
  subscribe(input: $input) {
    id
    ... on BasicMessage {
      data { ... on DevPlatformAppMessageData { payload } }
    }
  }
}
""".strip()


class FrameKind(Enum):
    """Known inbound frame types."""

    PING = "ping"
    PONG = "pong"
    CONNECTION_ACK = "connection_ack"
    NEXT = "next"
    ERROR = "error"
    COMPLETE = "complete"
    OTHER = "other"


class FeedChannel(BaseModel):
    """Realtime channel the subscription is opened on."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    team_owner: str = Field(default="DEV_PLATFORM", alias="teamOwner")
    category: str = Field(default="DEV_PLATFORM_APP_EVENTS")
    tag: str = Field(
        default="wsbapp:771348a3-fe17-45f7-9e5d-4741f9b38b5b:LIVE_FEED",
        description="Topic identifying the WSBApp live feed",
    )


DEFAULT_CHANNEL = FeedChannel()


class InboundFrame(BaseModel):
    """Decoded transport-level envelope."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str
    id: str | None = None
    payload: Any = None

    @property
    def kind(self) -> FrameKind:
        """Map the raw ``type`` onto FrameKind."""
        try:
            return FrameKind(self.type)
        except ValueError:
            return FrameKind.OTHER


# Outer ``next`` payload: data.subscribe.data.payload.msg
class _MessagePayload(BaseModel):
    msg: str


class _MessageData(BaseModel):
    payload: _MessagePayload


class _SubscribeResult(BaseModel):
    data: _MessageData


class _SubscriptionData(BaseModel):
    subscribe: _SubscribeResult


class _NextPayload(BaseModel):
    data: _SubscriptionData


# Inner message: data.appData.trendingTickersDaily
class _AppData(BaseModel):
    trending_tickers_daily: list[str] = Field(alias="trendingTickersDaily")


class _InnerData(BaseModel):
    app_data: _AppData = Field(alias="appData")


class _InnerMessage(BaseModel):
    data: _InnerData


def parse_frame(raw: str | bytes) -> InboundFrame:
    """Decode one raw frame into an InboundFrame.

    Raises:
        ProtocolParseError: If the frame is not a JSON object with a type

    """
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolParseError(f"invalid_json error={exc}") from exc
    if not isinstance(decoded, dict):
        raise ProtocolParseError(f"not_an_object got={type(decoded).__name__}")
    try:
        return InboundFrame.model_validate(decoded)
    except ValidationError as exc:
        raise ProtocolParseError(
            f"invalid_envelope errors={exc.error_count()}"
        ) from exc


def extract_item_ids(frame: InboundFrame) -> list[str]:
    """Return the trending tickers carried by a ``next`` frame, in order.

    Raises:
        ProtocolParseError: If the outer or inner payload has the wrong shape

    """
    try:
        outer = _NextPayload.model_validate(frame.payload)
    except ValidationError as exc:
        raise ProtocolParseError(
            f"invalid_next_payload errors={exc.error_count()}"
        ) from exc
    try:
        inner = _InnerMessage.model_validate_json(outer.data.subscribe.data.payload.msg)
    except ValidationError as exc:
        raise ProtocolParseError(
            f"invalid_inner_message errors={exc.error_count()}"
        ) from exc

    items: list[str] = []
    for raw_id in inner.data.app_data.trending_tickers_daily:
        item_id = raw_id.strip()
        if item_id:
            items.append(item_id)
    return items


def _encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


def connection_init(credential: Credential) -> str:
    """Build the connection_init frame carrying the bearer token."""
    return _encode(
        {"type": "connection_init", "payload": {"Authorization": credential.bearer()}}
    )


def pong() -> str:
    """Build the reply to a server ping."""
    return _encode({"type": "pong"})


def subscribe(channel: FeedChannel = DEFAULT_CHANNEL) -> str:
    """Build the single subscribe request for ``channel``."""
    return _encode(
        {
            "id": SUBSCRIPTION_ID,
            "type": "subscribe",
            "payload": {
                "operationName": OPERATION_NAME,
                "query": SUBSCRIPTION_QUERY,
                "variables": {
                    "input": {"channel": channel.model_dump(by_alias=True)}
                },
            },
        }
    )
