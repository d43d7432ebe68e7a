"""Vote relay core: Redis stream -> pub/sub channel -> event-stream viewers.

Learn: Events flow through three stages:
1. Producers XADD vote entries to the stream (the durable, ordered log)
2. One StreamConsumer tails the stream, decodes each entry, and PUBLISHes it
3. One FanoutBroadcaster per viewer SUBSCRIBEs and writes SSE frames

There is no shared registry of viewers. Each broadcaster subscribes to Redis
directly, so Redis does the fan-out and keeps per-subscriber order.
"""

from election_relay.relay.broadcaster import FanoutBroadcaster
from election_relay.relay.consumer import ConsumerHealth, StreamConsumer
from election_relay.relay.events import (
    LATEST_CURSOR,
    DecodeError,
    VoteEvent,
    decode_vote,
    encode_vote,
    format_frame,
)
from election_relay.relay.transport import (
    LogEntry,
    Subscription,
    TransportError,
    VoteLog,
)

__all__ = [
    "ConsumerHealth",
    "DecodeError",
    "FanoutBroadcaster",
    "LATEST_CURSOR",
    "LogEntry",
    "StreamConsumer",
    "Subscription",
    "TransportError",
    "VoteEvent",
    "VoteLog",
    "decode_vote",
    "encode_vote",
    "format_frame",
]
