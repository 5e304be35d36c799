"""
Schemas for the Single-Election Voting Service

Each Pydantic model below is either a registry record owned by the election
engine (and persisted to a MongoDB collection named after it, lowercased) or a
request/response body of the HTTP API.

Collections:
- Election: The singleton election record, with both registries embedded.
- Event: Append-only log of state-change events.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class Voter(BaseModel):
    address: str = Field(..., description="Voter identity (hex address, lower case)")
    is_registered: bool = Field(True)
    has_voted: bool = Field(False)
    voted_candidate_id: int = Field(0, description="0 until the voter has voted")
    registration_time: int = Field(..., description="Unix seconds")
    national_id: str = Field(..., description="Government issued ID, unique across voters")


class Candidate(BaseModel):
    id: int = Field(..., description="Sequential id starting at 1")
    name: str
    party: str
    manifesto: str = ""
    vote_count: int = 0
    is_active: bool = True
    nomination_time: int = Field(..., description="Unix seconds")


class ElectionStatus(BaseModel):
    name: str
    phase: int
    phase_name: str
    start_time: int
    end_time: int
    total_voters: int
    total_candidates: int
    votes_cast: int
    results_available: bool


class ElectionResults(BaseModel):
    winner: int = Field(..., description="Winning candidate id, 0 when nobody received a vote")
    winner_name: str
    winner_party: str
    winner_votes: int
    total_votes: int


class EventRecord(BaseModel):
    seq: int = Field(..., description="Position in the event log, starting at 1")
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int


class DeploymentInfo(BaseModel):
    network: str
    election_name: str
    duration_in_days: int
    deployer: str
    deployment_time: str
    start_time: int
    end_time: int


# --------- Request bodies ---------

class CreateElectionRequest(BaseModel):
    name: str
    duration_in_days: int


class RegisterVoterRequest(BaseModel):
    address: str
    national_id: str


class BatchRegisterRequest(BaseModel):
    addresses: List[str]
    national_ids: List[str]


class NominateRequest(BaseModel):
    name: str
    party: str
    manifesto: Optional[str] = ""


class CastVoteRequest(BaseModel):
    candidate_id: int


class TransferRequest(BaseModel):
    new_commissioner: str
