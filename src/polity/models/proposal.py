"""Proposal and vote models.

Proposals are never deleted; terminal rows are kept as the community's law
history.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampCreatedMixin

if TYPE_CHECKING:
    from .community import Community


class Proposal(Base, TimestampCreatedMixin):
    """A law proposed in a community.

    Attributes:
        id: Primary key
        community_id: Community that proposed the law (the initiator side)
        law_type: Catalog key of the law
        proposer_id: User who proposed it
        metadata_json: Validated law payload
        target_community_id: Other community for war and alliance proposals
        status: pending/passed/rejected/expired/failed
        expires_at: End of the voting window
        resolved_at: When the proposal left ``pending``
        resolution_notes: Human-readable reason for the final state
        effect_applied_at: When the law effect was applied, for passed laws
    """

    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    law_type: Mapped[str] = mapped_column(String, nullable=False)
    proposer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    target_community_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(String, nullable=True)
    effect_applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    community: Mapped["Community"] = relationship(
        "Community", back_populates="proposals", foreign_keys=[community_id]
    )
    votes: Mapped[list["ProposalVote"]] = relationship(
        "ProposalVote", back_populates="proposal", order_by="ProposalVote.id"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'passed', 'rejected', 'expired', 'failed')",
            name="ck_proposals_status",
        ),
        Index("idx_proposals_community_status", "community_id", "status"),
        Index("idx_proposals_target_status", "target_community_id", "status"),
        Index("idx_proposals_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Proposal(id={self.id}, law_type='{self.law_type}', status='{self.status}')>"


class ProposalVote(Base, TimestampCreatedMixin):
    """A single immutable vote.

    ``voter_community_id`` records which side of an alliance the voter
    belongs to; for every other law it equals the proposal's community.
    """

    __tablename__ = "proposal_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    voter_community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    choice: Mapped[str] = mapped_column(String, nullable=False)

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("proposal_id", "user_id", name="uq_proposal_votes_user"),
        CheckConstraint("choice IN ('yes', 'no')", name="ck_proposal_votes_choice"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProposalVote(proposal_id={self.proposal_id}, user_id={self.user_id}, "
            f"choice='{self.choice}')>"
        )
