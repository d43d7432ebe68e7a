"""Vote event codec: stream entry payload -> VoteEvent -> channel payload -> SSE frame.

Learn: The relay decodes and re-encodes rather than forwarding raw bytes.
Decoding is structural only: the payload must be a JSON object whose
polling_unit_id and votes (when present) are integers. Missing keys fall
back to 0 and unknown keys are ignored. Values are never interpreted.
"""

from pydantic import BaseModel, ValidationError

# XREAD id meaning "only entries added after this call"
LATEST_CURSOR = "$"


class DecodeError(ValueError):
    """A stream entry payload could not be decoded into a VoteEvent."""


class VoteEvent(BaseModel):
    """One reported vote-count delta for a polling unit."""

    polling_unit_id: int = 0
    votes: int = 0

    model_config = {"frozen": True, "strict": True, "extra": "ignore"}


def decode_vote(raw: str | bytes) -> VoteEvent:
    """Parse a JSON payload into a VoteEvent, raising DecodeError on failure."""
    try:
        return VoteEvent.model_validate_json(raw)
    except ValidationError as e:
        raise DecodeError(str(e)) from e


def encode_vote(event: VoteEvent) -> str:
    """Serialize a VoteEvent as compact JSON for the fan-out channel."""
    return event.model_dump_json()


def format_frame(payload: str) -> str:
    """Wrap a channel payload as a single server-sent event frame."""
    return f"data: {payload}\n\n"
