"""Community and membership models.

A community is the unit of governance: it has a governance type, a roster of
ranked members and the fields that passed laws write to.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampCreatedMixin

if TYPE_CHECKING:
    from .proposal import Proposal
    from .rebellion import Rebellion


class Community(Base, TimestampCreatedMixin):
    """A player community.

    Attributes:
        id: Primary key
        name: Unique display name
        governance_type: ``monarchy`` or ``democracy``
        members_count: Denormalised roster size
        announcement_title: Title of the current message of the day
        announcement_content: Body of the current message of the day
        announcement_updated_at: When the message of the day last changed
        heir_id: User designated as heir by a passed PROPOSE_HEIR
        work_tax_rate: Rate set by WORK_TAX
        import_tariff_rate: Rate set by IMPORT_TARIFF
    """

    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    governance_type: Mapped[str] = mapped_column(String, nullable=False, default="monarchy")
    members_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Law effects
    announcement_title: Mapped[str | None] = mapped_column(String(120), nullable=True)
    announcement_content: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    announcement_updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    heir_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    work_tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    import_tariff_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    members: Mapped[list["Member"]] = relationship("Member", back_populates="community")
    proposals: Mapped[list["Proposal"]] = relationship(
        "Proposal", back_populates="community", foreign_keys="Proposal.community_id"
    )
    rebellions: Mapped[list["Rebellion"]] = relationship("Rebellion", back_populates="community")

    __table_args__ = (
        CheckConstraint(
            "governance_type IN ('monarchy', 'democracy')",
            name="ck_communities_governance_type",
        ),
        CheckConstraint("work_tax_rate >= 0 AND work_tax_rate <= 1", name="ck_communities_tax"),
        CheckConstraint(
            "import_tariff_rate >= 0 AND import_tariff_rate <= 1", name="ck_communities_tariff"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Community(id={self.id}, name='{self.name}', "
            f"governance_type='{self.governance_type}')>"
        )


class Member(Base):
    """Membership of one user in one community.

    ``rank_tier`` is authoritative; ``role`` is only populated on rows
    migrated from the role-based roster and is read through
    :func:`polity.domain.ranks.rank_of`.
    """

    __tablename__ = "community_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rank_tier: Mapped[int | None] = mapped_column(Integer, nullable=True)
    role: Mapped[str | None] = mapped_column(String, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(nullable=False)

    community: Mapped["Community"] = relationship("Community", back_populates="members")

    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_members_user"),
        CheckConstraint("rank_tier IS NULL OR rank_tier >= 0", name="ck_community_members_rank"),
        Index(
            "uq_community_members_sovereign",
            "community_id",
            unique=True,
            sqlite_where=text("rank_tier = 0"),
            postgresql_where=text("rank_tier = 0"),
        ),
        Index("idx_community_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Member(community_id={self.community_id}, user_id={self.user_id}, "
            f"rank_tier={self.rank_tier})>"
        )
