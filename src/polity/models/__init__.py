"""SQLAlchemy models for the governance engine.

This module exports all database models and the declarative base.
"""

from .base import Base, TimestampCreatedMixin, UTCDateTime, utc_now

# Communities and rosters
from .community import Community, Member

# Laws
from .proposal import Proposal, ProposalVote

# Uprisings
from .rebellion import Negotiation, Rebellion, RebellionSupport, UprisingCooldown

# Law effects and battles
from .records import Alliance, CivilWar, CurrencyIssuance, WarDeclaration

__all__ = [
    "Alliance",
    "Base",
    "CivilWar",
    "Community",
    "CurrencyIssuance",
    "Member",
    "Negotiation",
    "Proposal",
    "ProposalVote",
    "Rebellion",
    "RebellionSupport",
    "TimestampCreatedMixin",
    "UTCDateTime",
    "UprisingCooldown",
    "WarDeclaration",
    "utc_now",
]
