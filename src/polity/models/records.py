"""Records written when passed laws and civil wars take effect."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampCreatedMixin


class Alliance(Base, TimestampCreatedMixin):
    """A Combined Front Contract between two communities.

    The pair is stored in canonical order (``community_a_id <
    community_b_id``) so one row covers both directions.
    """

    __tablename__ = "alliances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    community_a_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    community_b_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    proposal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("proposals.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("community_a_id < community_b_id", name="ck_alliances_canonical"),
        Index("idx_alliances_a", "community_a_id", "is_active"),
        Index("idx_alliances_b", "community_b_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Alliance(id={self.id}, a={self.community_a_id}, b={self.community_b_id})>"


class WarDeclaration(Base, TimestampCreatedMixin):
    """Hostilities declared by one community against another."""

    __tablename__ = "war_declarations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attacker_community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    defender_community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    proposal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("proposals.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "attacker_community_id != defender_community_id", name="ck_war_declarations_sides"
        ),
        Index("idx_war_declarations_attacker", "attacker_community_id", "is_active"),
    )


class CurrencyIssuance(Base, TimestampCreatedMixin):
    """Ledger entry for treasury gold burned to mint community currency."""

    __tablename__ = "currency_issuances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    proposal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("proposals.id"), nullable=True
    )
    gold_burned: Mapped[float] = mapped_column(Float, nullable=False)
    conversion_rate: Mapped[float] = mapped_column(Float, nullable=False)
    currency_minted: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        CheckConstraint("gold_burned > 0", name="ck_currency_issuances_gold"),
        CheckConstraint("conversion_rate > 0", name="ck_currency_issuances_rate"),
    )


class CivilWar(Base, TimestampCreatedMixin):
    """The battle phase of a rebellion.

    Opened when a rebellion reaches its support threshold; the referee (or
    any battle system) records the result.
    """

    __tablename__ = "civil_wars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rebellion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rebellions.id"), nullable=False, unique=True
    )
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ends_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'revolutionary_win', 'government_win')",
            name="ck_civil_wars_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<CivilWar(id={self.id}, rebellion_id={self.rebellion_id}, status='{self.status}')>"
