"""Uprising models: rebellions, supporters, negotiations and cooldowns."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
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
    from .community import Community


class Rebellion(Base, TimestampCreatedMixin):
    """An attempt by a member to overthrow the sovereign.

    Attributes:
        id: Primary key
        community_id: Community being challenged
        leader_id: Member who started the uprising
        target_id: Sovereign at the time the uprising started
        status: agitation/battle/resolved
        current_supports: Supporters so far, including the leader
        required_supports: Supporters needed to reach battle
        agitation_expires_at: End of the agitation window
        battle_started_at: When the threshold was reached
        resolved_at: When the rebellion reached ``resolved``
        is_leader_exiled: Set by the sovereign; does not end the rebellion
        exiled_at: When the leader was exiled
        battle_outcome: won/lost as reported by the battle collaborator
    """

    __tablename__ = "rebellions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    leader_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="agitation")
    current_supports: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_supports: Mapped[int] = mapped_column(Integer, nullable=False)
    agitation_expires_at: Mapped[datetime] = mapped_column(nullable=False)
    battle_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_leader_exiled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exiled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    battle_outcome: Mapped[str | None] = mapped_column(String, nullable=True)

    community: Mapped["Community"] = relationship("Community", back_populates="rebellions")
    supports: Mapped[list["RebellionSupport"]] = relationship(
        "RebellionSupport", back_populates="rebellion", order_by="RebellionSupport.id"
    )
    negotiations: Mapped[list["Negotiation"]] = relationship(
        "Negotiation", back_populates="rebellion", order_by="Negotiation.id"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('agitation', 'battle', 'resolved')", name="ck_rebellions_status"
        ),
        CheckConstraint(
            "battle_outcome IS NULL OR battle_outcome IN ('won', 'lost')",
            name="ck_rebellions_battle_outcome",
        ),
        CheckConstraint("current_supports >= 0", name="ck_rebellions_supports"),
        CheckConstraint("required_supports >= 1", name="ck_rebellions_required"),
        Index(
            "uq_rebellions_active_community",
            "community_id",
            unique=True,
            sqlite_where=text("status != 'resolved'"),
            postgresql_where=text("status != 'resolved'"),
        ),
        Index("idx_rebellions_status_expires", "status", "agitation_expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Rebellion(id={self.id}, community_id={self.community_id}, "
            f"status='{self.status}', supports={self.current_supports}/{self.required_supports})>"
        )


class RebellionSupport(Base, TimestampCreatedMixin):
    """A member backing a rebellion. The leader never has a row here."""

    __tablename__ = "rebellion_supports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rebellion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rebellions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    rebellion: Mapped["Rebellion"] = relationship("Rebellion", back_populates="supports")

    __table_args__ = (
        UniqueConstraint("rebellion_id", "user_id", name="uq_rebellion_supports_user"),
    )


class Negotiation(Base, TimestampCreatedMixin):
    """A sovereign's offer to end a rebellion peacefully."""

    __tablename__ = "rebellion_negotiations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rebellion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rebellions.id", ondelete="CASCADE"), nullable=False
    )
    requested_by: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    terms: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rebellion: Mapped["Rebellion"] = relationship("Rebellion", back_populates="negotiations")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')", name="ck_negotiations_status"
        ),
        Index(
            "uq_negotiations_pending_rebellion",
            "rebellion_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Negotiation(id={self.id}, rebellion_id={self.rebellion_id}, status='{self.status}')>"


class UprisingCooldown(Base, TimestampCreatedMixin):
    """Window during which no new uprising may start in a community."""

    __tablename__ = "uprising_cooldowns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    rebellion_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("rebellions.id"), nullable=True
    )
    reason: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint(
            "reason IN ('negotiation', 'failure')", name="ck_uprising_cooldowns_reason"
        ),
        Index("idx_uprising_cooldowns_community_expires", "community_id", "expires_at"),
    )
