"""Pydantic schemas for the polling-unit seed file.

Learn: The seed file is static metadata rendered into the dashboard map.
Live vote deltas never touch these models; they flow through the relay.
"""

from pydantic import BaseModel


class CandidateVotes(BaseModel):
    candidate_a: int = 0
    candidate_b: int = 0
    candidate_c: int = 0


class UnitMetrics(BaseModel):
    machine_uptime: str = ""
    ballots_cast: int = 0
    spoiled_ballots: int = 0


class PollingUnit(BaseModel):
    id: int
    name: str
    lat: float
    lng: float
    votes: CandidateVotes = CandidateVotes()
    metrics: UnitMetrics = UnitMetrics()


class SeedFile(BaseModel):
    """Top-level shape of data/votes.json."""
    polling_units: list[PollingUnit] = []
