"""Pydantic models for request/response validation."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from .records import MAX_CANDIDATE_ID


class ApiModel(BaseModel):
    """Base model emitting camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Voting

class VoteRequest(ApiModel):
    """Vote submission request model."""

    candidate_id: Optional[StrictInt] = Field(
        default=None, ge=1, le=MAX_CANDIDATE_ID, description="Candidate ID"
    )

    model_config = ConfigDict(json_schema_extra={"example": {"candidateId": 3}})


class VoteResponse(ApiModel):
    """Vote submission response model."""

    message: str = Field(default="Vote cast successfully", description="Response message")


# Ballot

class BallotCandidate(ApiModel):
    id: int = Field(..., alias="_id")
    name: str
    position: str
    description: Optional[str] = None
    vote_count: int


class BallotGroup(ApiModel):
    group: str
    description: str
    candidates: list[BallotCandidate]


class CandidatesResponse(ApiModel):
    """Active groups with their candidates."""

    groups: list[BallotGroup]


# Results

class CandidateResult(ApiModel):
    id: int
    name: str
    position: str
    description: Optional[str] = None
    vote_count: int
    vote_percentage: float = Field(..., description="Share of the group's votes, 0-100")


class GroupResult(ApiModel):
    group: str
    description: str
    candidates: list[CandidateResult]
    total_votes: int
    winner: Optional[CandidateResult] = Field(
        default=None, description="Leading candidate; absent when nobody has votes or the lead is tied"
    )
    is_tie: bool = False


class ResultsResponse(ApiModel):
    """Vote results response model."""

    results: list[GroupResult]
    total_votes: int
    timestamp: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "results": [
                    {
                        "group": "Student President",
                        "description": "Vote for the Student Council President",
                        "candidates": [
                            {"id": 2, "name": "Priya Patel", "position": "Student President Candidate",
                             "voteCount": 12, "votePercentage": 60.0},
                            {"id": 1, "name": "Rahul Sharma", "position": "Student President Candidate",
                             "voteCount": 8, "votePercentage": 40.0},
                        ],
                        "totalVotes": 20,
                        "winner": {"id": 2, "name": "Priya Patel", "position": "Student President Candidate",
                                   "voteCount": 12, "votePercentage": 60.0},
                        "isTie": False,
                    }
                ],
                "totalVotes": 20,
                "timestamp": "2025-02-01T10:30:00Z",
            }
        }
    )


class LiveCandidateResult(CandidateResult):
    recent_votes: int = Field(..., description="Votes inside the recent-activity window")


class LiveGroupResult(GroupResult):
    candidates: list[LiveCandidateResult]
    winner: Optional[LiveCandidateResult] = None


class LiveStats(ApiModel):
    total_votes: int
    total_voters: int
    active_categories: int
    last_vote_time: Optional[datetime] = None
    voting_rate: float = Field(..., description="Votes per minute over the recent-activity window")


class LiveResponse(ApiModel):
    groups: list[LiveGroupResult]
    stats: LiveStats
    timestamp: datetime


class RefreshResponse(ApiModel):
    message: str
    timestamp: datetime


# Authentication

class GoogleSignInRequest(ApiModel):
    id_token: str = Field(..., min_length=1, description="Google ID token from the client sign-in flow")


class SessionTokenResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    has_voted: bool


class SessionResponse(ApiModel):
    email: str
    name: str
    has_voted: bool


# Administration

class SeedResponse(ApiModel):
    message: str
    groups: int
    candidates: int


class AllowListReloadResponse(ApiModel):
    message: str
    emails: int


# Service

class HealthResponse(ApiModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual services")
    timestamp: datetime


class ErrorResponse(ApiModel):
    """Error response model."""

    error: str = Field(..., description="Machine-readable reason")
    message: str = Field(..., description="Error message")
    details: dict = Field(default_factory=dict, description="Additional error details")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "already_voted",
                "message": "You have already voted",
                "details": {},
            }
        }
    )
