"""
Pydantic models for API request/response validation.
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class PlayerRef(BaseModel):
    """Player reference embedded in partnership and request views."""

    id: int
    full_name: str
    avatar: Optional[str] = None


class NamedRef(BaseModel):
    """Division or season reference."""

    id: int
    name: str


class AdminRef(BaseModel):
    """Admin who processed a withdrawal request."""

    id: int
    name: Optional[str] = None
    role: str


# ---------------------------------------------------------------------------
# Partnerships
# ---------------------------------------------------------------------------


class PartnershipResponse(BaseModel):
    """Partnership row."""

    id: int
    captain_id: Optional[int] = None
    partner_id: Optional[int] = None
    division_id: int
    season_id: int
    status: str
    pair_rating: Optional[float] = None
    predecessor_id: Optional[int] = None
    withdrawal_request_id: Optional[int] = None
    created_at: Optional[str] = None
    dissolved_at: Optional[str] = None
    partner_joined_at: Optional[str] = None


class SuccessorPartnership(BaseModel):
    """Successor created when the partnership was dissolved."""

    id: int
    captain_id: Optional[int] = None
    partner_id: Optional[int] = None
    status: str
    created_at: Optional[str] = None
    captain: Optional[PlayerRef] = None
    partner: Optional[PlayerRef] = None


class PartnershipDetail(PartnershipResponse):
    """Partnership with its players, division, season and successors."""

    captain: Optional[PlayerRef] = None
    partner: Optional[PlayerRef] = None
    division: Optional[NamedRef] = None
    season: Optional[NamedRef] = None
    successors: List[SuccessorPartnership] = []


class DissolutionRequestSummary(BaseModel):
    """The withdrawal request that dissolved a partnership."""

    id: int
    requesting_player_id: int
    reason: str
    status: str
    request_date: Optional[str] = None
    requesting_player: Optional[PlayerRef] = None


class DissolvedPartnershipResponse(PartnershipDetail):
    """DISSOLVED or EXPIRED partnership for the admin history view."""

    withdrawal_request: Optional[DissolutionRequestSummary] = None


class DissolvedPartnershipListResponse(BaseModel):
    """Paginated response for GET /api/admin/partnerships/dissolved."""

    items: List[DissolvedPartnershipResponse]
    page: int
    page_size: int
    total_items: int
    total_pages: int


# ---------------------------------------------------------------------------
# Withdrawal requests
# ---------------------------------------------------------------------------


class WithdrawalRequestCreate(BaseModel):
    """Request to leave an active partnership."""

    partnership_id: int
    requesting_player_id: int
    reason: str = Field(..., max_length=2000)


class WithdrawalDecision(BaseModel):
    """Optional admin notes on approve/reject."""

    admin_notes: Optional[str] = Field(None, max_length=2000)


class WithdrawalStatusUpdate(BaseModel):
    """Approve or reject a request in one call."""

    status: Literal["APPROVED", "REJECTED"]
    admin_notes: Optional[str] = Field(None, max_length=2000)


class WithdrawalRequestResponse(BaseModel):
    """Withdrawal request row."""

    id: int
    partnership_id: int
    season_id: int
    requesting_player_id: int
    reason: str
    status: str
    request_date: Optional[str] = None
    processed_at: Optional[str] = None
    processed_by_admin_id: Optional[int] = None
    admin_notes: Optional[str] = None


class WithdrawalRequestDetail(WithdrawalRequestResponse):
    """Withdrawal request joined with its partnership, requester and admin."""

    requesting_player: Optional[PlayerRef] = None
    processed_by_admin: Optional[AdminRef] = None
    season: Optional[NamedRef] = None
    partnership: Optional[PartnershipDetail] = None


class WithdrawalRequestListResponse(BaseModel):
    """Paginated response for GET /api/admin/withdrawals."""

    items: List[WithdrawalRequestDetail]
    page: int
    page_size: int
    total_items: int
    total_pages: int


class ApproveWithdrawalResponse(BaseModel):
    """Result of approving a request."""

    dissolved_partnership: PartnershipResponse
    successor_partnership: PartnershipResponse


class ProcessWithdrawalResponse(BaseModel):
    """Result of PATCH /api/admin/withdrawals/{id}."""

    withdrawal_request: WithdrawalRequestResponse
    dissolved_partnership: Optional[PartnershipResponse] = None
    successor_partnership: Optional[PartnershipResponse] = None


class WithdrawalStatsResponse(BaseModel):
    """Dashboard counters."""

    pending: int
    approved: int
    rejected: int
    total: int
    total_dissolved: int


# ---------------------------------------------------------------------------
# Timeline and season close
# ---------------------------------------------------------------------------


class TimelineEvent(BaseModel):
    """One event in a partnership chain's history."""

    event_type: str
    occurred_at: Optional[str] = None
    partnership_id: int
    withdrawal_request_id: Optional[int] = None
    actor_id: Optional[int] = None
    details: Dict[str, Any] = {}


class TimelineResponse(BaseModel):
    """Ordered events for the chain containing ``partnership_id``."""

    partnership_id: int
    events: List[TimelineEvent]


class SeasonExpiryResponse(BaseModel):
    """Result of closing a season."""

    season_id: int
    expired_partnership_ids: List[int]
    rejected_request_ids: List[int]
