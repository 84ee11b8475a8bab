"""HTTP routes for the governance API.

The acting user arrives in the ``X-User-Id`` header; authenticating it is
the job of whatever sits in front of this service.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from polity.api.runtime import ApiState
from polity.database import check_database_health
from polity.domain.enums import BattleOutcome, GovernanceType, VoteChoice
from polity.domain.laws import DEFAULT_REGISTRY, LawDefinition
from polity.domain.ranks import governance_profile, rank_label, rank_of
from polity.factory import ServiceBundle
from polity.models import Community, Member, Negotiation, ProposalVote, Rebellion
from polity.services.proposal_service import ProposalSummary

router = APIRouter()


def get_state(request: Request) -> ApiState:
    state = getattr(request.app.state, "api_state", None)
    if state is None:  # pragma: no cover - FastAPI should always initialise state
        raise RuntimeError("API state not initialised")
    return state


ApiStateDep = Annotated[ApiState, Depends(get_state)]


def get_services(state: ApiStateDep) -> Generator[ServiceBundle]:
    with state.session_factory() as session:
        yield state.services(session)


def get_actor(x_user_id: Annotated[int | None, Header()] = None) -> int:
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    return x_user_id


ServicesDep = Annotated[ServiceBundle, Depends(get_services)]
ActorDep = Annotated[int, Depends(get_actor)]


# --- Schemas ----------------------------------------------------------------------------


class RuleSummary(BaseModel):
    propose_ranks: list[int]
    vote_access: str
    passing_condition: str
    time_to_pass: str
    can_fast_track: bool
    description: str


class LawSummary(BaseModel):
    law_type: str
    label: str
    description: str
    icon: str
    bi_communal: bool
    rule: RuleSummary


class CreateCommunityRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    governance_type: GovernanceType | None = None


class CommunitySummary(BaseModel):
    id: int
    name: str
    governance_type: str
    governance_label: str
    members_count: int
    sovereign_id: int | None
    heir_id: int | None
    announcement_title: str | None
    announcement_content: str | None
    work_tax_rate: float
    import_tariff_rate: float


class MemberSummary(BaseModel):
    user_id: int
    rank: int
    rank_label: str
    joined_at: datetime


class AssignRankRequest(BaseModel):
    rank: int = Field(ge=0)


class ProposeRequest(BaseModel):
    law_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class VoteRequest(BaseModel):
    choice: VoteChoice


class SideSummary(BaseModel):
    community_id: int
    yes: int
    no: int
    eligible: int
    approved: bool


class ProposalResponse(BaseModel):
    id: int
    community_id: int
    law_type: str
    proposer_id: int
    metadata: dict[str, Any]
    target_community_id: int | None
    status: str
    created_at: datetime
    expires_at: datetime
    resolved_at: datetime | None
    resolution_notes: str | None
    effect_applied_at: datetime | None
    yes_votes: int
    no_votes: int
    sides: list[SideSummary]
    half_approved: bool


class VoteSummary(BaseModel):
    user_id: int
    choice: str
    voter_community_id: int
    created_at: datetime


class EligibilityResponse(BaseModel):
    allowed: bool
    reason: str | None


class RebellionResponse(BaseModel):
    id: int
    community_id: int
    leader_id: int
    target_id: int
    status: str
    current_supports: int
    required_supports: int
    created_at: datetime
    agitation_expires_at: datetime
    battle_started_at: datetime | None
    resolved_at: datetime | None
    is_leader_exiled: bool
    battle_outcome: str | None
    outcome: str | None


class SupporterSummary(BaseModel):
    user_id: int
    created_at: datetime


class NegotiationRequest(BaseModel):
    terms: dict[str, Any] | None = None


class NegotiationReply(BaseModel):
    accept: bool


class NegotiationResponse(BaseModel):
    id: int
    rebellion_id: int
    requested_by: int
    status: str
    terms: dict[str, Any] | None
    created_at: datetime
    responded_at: datetime | None


class BattleResultRequest(BaseModel):
    outcome: BattleOutcome


class SweepResponse(BaseModel):
    proposals: int
    rebellions: int


# --- Conversions ------------------------------------------------------------------------


def _law_summary(definition: LawDefinition, governance: GovernanceType) -> LawSummary:
    rule = definition.rules[governance]
    return LawSummary(
        law_type=str(definition.law_type),
        label=definition.label,
        description=definition.description,
        icon=definition.icon,
        bi_communal=definition.bi_communal,
        rule=RuleSummary(
            propose_ranks=sorted(rule.propose_ranks),
            vote_access=str(rule.vote_access),
            passing_condition=str(rule.passing_condition),
            time_to_pass=rule.time_to_pass,
            can_fast_track=rule.can_fast_track,
            description=rule.description,
        ),
    )


def _community_summary(community: Community, services: ServiceBundle) -> CommunitySummary:
    return CommunitySummary(
        id=community.id,
        name=community.name,
        governance_type=community.governance_type,
        governance_label=governance_profile(community.governance_type).label,
        members_count=community.members_count,
        sovereign_id=services.membership.sovereign_of(community.id),
        heir_id=community.heir_id,
        announcement_title=community.announcement_title,
        announcement_content=community.announcement_content,
        work_tax_rate=community.work_tax_rate,
        import_tariff_rate=community.import_tariff_rate,
    )


def _member_summary(member: Member, governance_type: str) -> MemberSummary:
    rank = rank_of(member)
    return MemberSummary(
        user_id=member.user_id,
        rank=rank,
        rank_label=rank_label(governance_type, rank),
        joined_at=member.joined_at,
    )


def _proposal_response(summary: ProposalSummary) -> ProposalResponse:
    proposal = summary.proposal
    return ProposalResponse(
        id=proposal.id,
        community_id=proposal.community_id,
        law_type=proposal.law_type,
        proposer_id=proposal.proposer_id,
        metadata=proposal.metadata_json or {},
        target_community_id=proposal.target_community_id,
        status=proposal.status,
        created_at=proposal.created_at,
        expires_at=proposal.expires_at,
        resolved_at=proposal.resolved_at,
        resolution_notes=proposal.resolution_notes,
        effect_applied_at=proposal.effect_applied_at,
        yes_votes=summary.yes_votes,
        no_votes=summary.no_votes,
        sides=[SideSummary.model_validate(side, from_attributes=True) for side in summary.sides],
        half_approved=summary.half_approved,
    )


def _vote_summary(vote: ProposalVote) -> VoteSummary:
    return VoteSummary(
        user_id=vote.user_id,
        choice=vote.choice,
        voter_community_id=vote.voter_community_id,
        created_at=vote.created_at,
    )


def _rebellion_response(rebellion: Rebellion, services: ServiceBundle) -> RebellionResponse:
    outcome = services.uprisings.outcome(rebellion)
    return RebellionResponse(
        id=rebellion.id,
        community_id=rebellion.community_id,
        leader_id=rebellion.leader_id,
        target_id=rebellion.target_id,
        status=rebellion.status,
        current_supports=rebellion.current_supports,
        required_supports=rebellion.required_supports,
        created_at=rebellion.created_at,
        agitation_expires_at=rebellion.agitation_expires_at,
        battle_started_at=rebellion.battle_started_at,
        resolved_at=rebellion.resolved_at,
        is_leader_exiled=rebellion.is_leader_exiled,
        battle_outcome=rebellion.battle_outcome,
        outcome=str(outcome) if outcome is not None else None,
    )


def _negotiation_response(negotiation: Negotiation) -> NegotiationResponse:
    return NegotiationResponse(
        id=negotiation.id,
        rebellion_id=negotiation.rebellion_id,
        requested_by=negotiation.requested_by,
        status=negotiation.status,
        terms=negotiation.terms,
        created_at=negotiation.created_at,
        responded_at=negotiation.responded_at,
    )


# --- Health and catalog -----------------------------------------------------------------


@router.get("/health")
async def health(state: ApiStateDep) -> dict[str, object]:
    return {
        "status": "ok",
        "database": check_database_health(state.engine),
        "sweep_running": state.sweeps.running,
        "sweep_interval_seconds": state.sweeps.interval_seconds,
    }


@router.get("/laws", response_model=list[LawSummary])
async def list_laws(
    governance_type: Annotated[GovernanceType, Query()] = GovernanceType.MONARCHY,
) -> list[LawSummary]:
    return [
        _law_summary(definition, governance_type)
        for definition in DEFAULT_REGISTRY.available_laws(governance_type)
    ]


# --- Communities ------------------------------------------------------------------------


@router.post(
    "/communities", response_model=CommunitySummary, status_code=status.HTTP_201_CREATED
)
def create_community(
    request: CreateCommunityRequest, services: ServicesDep, actor: ActorDep
) -> CommunitySummary:
    community = services.membership.create_community(
        request.name, actor, governance_type=request.governance_type
    )
    return _community_summary(community, services)


@router.get("/communities", response_model=list[CommunitySummary])
def list_communities(services: ServicesDep) -> list[CommunitySummary]:
    return [_community_summary(c, services) for c in services.membership.list_communities()]


@router.get("/communities/{community_id}", response_model=CommunitySummary)
def get_community(community_id: int, services: ServicesDep) -> CommunitySummary:
    return _community_summary(services.membership.get_community(community_id), services)


@router.get("/communities/{community_id}/members", response_model=list[MemberSummary])
def list_members(community_id: int, services: ServicesDep) -> list[MemberSummary]:
    community = services.membership.get_community(community_id)
    return [
        _member_summary(member, community.governance_type)
        for member in services.membership.list_members(community_id)
    ]


@router.post(
    "/communities/{community_id}/members",
    response_model=MemberSummary,
    status_code=status.HTTP_201_CREATED,
)
def join_community(community_id: int, services: ServicesDep, actor: ActorDep) -> MemberSummary:
    member = services.membership.join(community_id, actor)
    community = services.membership.get_community(community_id)
    return _member_summary(member, community.governance_type)


@router.put("/communities/{community_id}/members/{user_id}/rank", response_model=MemberSummary)
def assign_rank(
    community_id: int,
    user_id: int,
    request: AssignRankRequest,
    services: ServicesDep,
    actor: ActorDep,
) -> MemberSummary:
    member = services.membership.assign_rank(community_id, actor, user_id, request.rank)
    community = services.membership.get_community(community_id)
    return _member_summary(member, community.governance_type)


# --- Proposals --------------------------------------------------------------------------


@router.get("/communities/{community_id}/laws", response_model=list[LawSummary])
def list_community_laws(community_id: int, services: ServicesDep) -> list[LawSummary]:
    community = services.membership.get_community(community_id)
    governance = GovernanceType(community.governance_type)
    return [
        _law_summary(definition, governance)
        for definition in DEFAULT_REGISTRY.available_laws(governance)
    ]


@router.post(
    "/communities/{community_id}/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
def propose_law(
    community_id: int, request: ProposeRequest, services: ServicesDep, actor: ActorDep
) -> ProposalResponse:
    summary = services.proposals.propose(community_id, request.law_type, actor, request.metadata)
    return _proposal_response(summary)


@router.get("/communities/{community_id}/proposals", response_model=list[ProposalResponse])
def list_proposals(
    community_id: int,
    services: ServicesDep,
    state_filter: Annotated[Literal["active", "resolved"], Query(alias="state")] = "active",
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ProposalResponse]:
    if state_filter == "active":
        summaries = services.proposals.list_active(community_id)
    else:
        summaries = services.proposals.list_resolved(community_id, limit=limit, offset=offset)
    return [_proposal_response(s) for s in summaries]


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
def get_proposal(proposal_id: int, services: ServicesDep) -> ProposalResponse:
    return _proposal_response(services.proposals.get_proposal(proposal_id))


@router.get("/proposals/{proposal_id}/votes", response_model=list[VoteSummary])
def list_votes(proposal_id: int, services: ServicesDep) -> list[VoteSummary]:
    return [_vote_summary(v) for v in services.proposals.list_votes(proposal_id)]


@router.post("/proposals/{proposal_id}/votes", response_model=ProposalResponse)
def cast_vote(
    proposal_id: int, request: VoteRequest, services: ServicesDep, actor: ActorDep
) -> ProposalResponse:
    return _proposal_response(services.proposals.vote(proposal_id, actor, request.choice))


@router.post("/proposals/{proposal_id}/fast-track", response_model=ProposalResponse)
def fast_track(proposal_id: int, services: ServicesDep, actor: ActorDep) -> ProposalResponse:
    return _proposal_response(services.proposals.fast_track(proposal_id, actor))


# --- Uprisings --------------------------------------------------------------------------


@router.get(
    "/communities/{community_id}/uprisings/eligibility", response_model=EligibilityResponse
)
def uprising_eligibility(
    community_id: int, services: ServicesDep, actor: ActorDep
) -> EligibilityResponse:
    eligibility = services.uprisings.can_start_uprising(community_id, actor)
    return EligibilityResponse(allowed=eligibility.allowed, reason=eligibility.reason)


@router.post(
    "/communities/{community_id}/uprisings",
    response_model=RebellionResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_uprising(community_id: int, services: ServicesDep, actor: ActorDep) -> RebellionResponse:
    rebellion = services.uprisings.start_uprising(community_id, actor)
    return _rebellion_response(rebellion, services)


@router.get("/communities/{community_id}/uprisings/active", response_model=RebellionResponse | None)
def get_active_uprising(community_id: int, services: ServicesDep) -> RebellionResponse | None:
    rebellion = services.uprisings.get_active_rebellion(community_id)
    return _rebellion_response(rebellion, services) if rebellion is not None else None


@router.get("/communities/{community_id}/uprisings", response_model=list[RebellionResponse])
def list_uprisings(
    community_id: int,
    services: ServicesDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[RebellionResponse]:
    rebellions = services.uprisings.list_history(community_id, limit=limit, offset=offset)
    return [_rebellion_response(r, services) for r in rebellions]


@router.get("/rebellions/{rebellion_id}", response_model=RebellionResponse)
def get_rebellion(rebellion_id: int, services: ServicesDep) -> RebellionResponse:
    return _rebellion_response(services.uprisings.get_rebellion(rebellion_id), services)


@router.post("/rebellions/{rebellion_id}/supports", response_model=RebellionResponse)
def support_rebellion(
    rebellion_id: int, services: ServicesDep, actor: ActorDep
) -> RebellionResponse:
    return _rebellion_response(services.uprisings.support(rebellion_id, actor), services)


@router.get("/rebellions/{rebellion_id}/supports", response_model=list[SupporterSummary])
def list_supporters(rebellion_id: int, services: ServicesDep) -> list[SupporterSummary]:
    return [
        SupporterSummary(user_id=s.user_id, created_at=s.created_at)
        for s in services.uprisings.list_supporters(rebellion_id)
    ]


@router.post("/rebellions/{rebellion_id}/exile", response_model=RebellionResponse)
def exile_leader(rebellion_id: int, services: ServicesDep, actor: ActorDep) -> RebellionResponse:
    return _rebellion_response(services.uprisings.exile_leader(rebellion_id, actor), services)


@router.post(
    "/rebellions/{rebellion_id}/negotiations",
    response_model=NegotiationResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_negotiation(
    rebellion_id: int, request: NegotiationRequest, services: ServicesDep, actor: ActorDep
) -> NegotiationResponse:
    negotiation = services.uprisings.request_negotiation(rebellion_id, actor, request.terms)
    return _negotiation_response(negotiation)


@router.get(
    "/rebellions/{rebellion_id}/negotiations/pending", response_model=NegotiationResponse | None
)
def get_pending_negotiation(
    rebellion_id: int, services: ServicesDep
) -> NegotiationResponse | None:
    services.uprisings.get_rebellion(rebellion_id)
    negotiation = services.uprisings.get_pending_negotiation(rebellion_id)
    return _negotiation_response(negotiation) if negotiation is not None else None


@router.post("/negotiations/{negotiation_id}/response", response_model=NegotiationResponse)
def respond_to_negotiation(
    negotiation_id: int, request: NegotiationReply, services: ServicesDep, actor: ActorDep
) -> NegotiationResponse:
    negotiation = services.uprisings.respond_to_negotiation(negotiation_id, request.accept, actor)
    return _negotiation_response(negotiation)


@router.post("/rebellions/{rebellion_id}/battle", response_model=RebellionResponse)
def record_battle_result(
    rebellion_id: int, request: BattleResultRequest, services: ServicesDep, actor: ActorDep
) -> RebellionResponse:
    services.civil_wars.record_result(rebellion_id, request.outcome, referee_id=actor)
    return _rebellion_response(services.uprisings.resolve_battle(rebellion_id), services)


# --- Maintenance ------------------------------------------------------------------------


@router.post("/maintenance/sweep", response_model=SweepResponse)
async def run_sweep(state: ApiStateDep) -> SweepResponse:
    report = await state.sweeps.sweep_now()
    return SweepResponse(proposals=report.proposals, rebellions=report.rebellions)
