"""Request dependencies: handles created in the lifespan, read from app.state.

Learn: Routes never import a global Redis client. The lifespan stores the
VoteLog and the StreamConsumer on app.state, and tests swap them with
app.dependency_overrides.
"""

from typing import Optional

from fastapi import HTTPException, Request

from election_relay.relay import StreamConsumer, VoteLog


def get_vote_log(request: Request) -> VoteLog:
    vote_log = getattr(request.app.state, "vote_log", None)
    if vote_log is None:
        raise HTTPException(status_code=503, detail="Vote log not connected")
    return vote_log


def get_consumer(request: Request) -> Optional[StreamConsumer]:
    return getattr(request.app.state, "consumer", None)
