"""Initial governance schema

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-16 09:12:44.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1d7e30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False
    )


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'communities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('governance_type', sa.String(), nullable=False),
        sa.Column('members_count', sa.Integer(), nullable=False),
        sa.Column('announcement_title', sa.String(length=120), nullable=True),
        sa.Column('announcement_content', sa.String(length=2000), nullable=True),
        sa.Column('announcement_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('heir_id', sa.Integer(), nullable=True),
        sa.Column('work_tax_rate', sa.Float(), nullable=False),
        sa.Column('import_tariff_rate', sa.Float(), nullable=False),
        _created_at(),
        sa.CheckConstraint("governance_type IN ('monarchy', 'democracy')", name='ck_communities_governance_type'),
        sa.CheckConstraint('work_tax_rate >= 0 AND work_tax_rate <= 1', name='ck_communities_tax'),
        sa.CheckConstraint('import_tariff_rate >= 0 AND import_tariff_rate <= 1', name='ck_communities_tariff'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'community_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('community_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('rank_tier', sa.Integer(), nullable=True),
        sa.Column('role', sa.String(), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('rank_tier IS NULL OR rank_tier >= 0', name='ck_community_members_rank'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('community_id', 'user_id', name='uq_community_members_user'),
    )
    op.create_index('idx_community_members_user', 'community_members', ['user_id'])
    # At most one sovereign per community
    op.create_index(
        'uq_community_members_sovereign',
        'community_members',
        ['community_id'],
        unique=True,
        sqlite_where=sa.text('rank_tier = 0'),
        postgresql_where=sa.text('rank_tier = 0'),
    )

    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('community_id', sa.Integer(), nullable=False),
        sa.Column('law_type', sa.String(), nullable=False),
        sa.Column('proposer_id', sa.Integer(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('target_community_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.String(), nullable=True),
        sa.Column('effect_applied_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'passed', 'rejected', 'expired', 'failed')", name='ck_proposals_status'
        ),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['target_community_id'], ['communities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_proposals_community_status', 'proposals', ['community_id', 'status'])
    op.create_index('idx_proposals_target_status', 'proposals', ['target_community_id', 'status'])
    op.create_index('idx_proposals_expires', 'proposals', ['status', 'expires_at'])

    op.create_table(
        'proposal_votes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('voter_community_id', sa.Integer(), nullable=False),
        sa.Column('choice', sa.String(), nullable=False),
        _created_at(),
        sa.CheckConstraint("choice IN ('yes', 'no')", name='ck_proposal_votes_choice'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['voter_community_id'], ['communities.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('proposal_id', 'user_id', name='uq_proposal_votes_user'),
    )

    op.create_table(
        'rebellions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('community_id', sa.Integer(), nullable=False),
        sa.Column('leader_id', sa.Integer(), nullable=False),
        sa.Column('target_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('current_supports', sa.Integer(), nullable=False),
        sa.Column('required_supports', sa.Integer(), nullable=False),
        sa.Column('agitation_expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('battle_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_leader_exiled', sa.Boolean(), nullable=False),
        sa.Column('exiled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('battle_outcome', sa.String(), nullable=True),
        _created_at(),
        sa.CheckConstraint("status IN ('agitation', 'battle', 'resolved')", name='ck_rebellions_status'),
        sa.CheckConstraint(
            "battle_outcome IS NULL OR battle_outcome IN ('won', 'lost')", name='ck_rebellions_battle_outcome'
        ),
        sa.CheckConstraint('current_supports >= 0', name='ck_rebellions_supports'),
        sa.CheckConstraint('required_supports >= 1', name='ck_rebellions_required'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    # At most one unresolved rebellion per community
    op.create_index(
        'uq_rebellions_active_community',
        'rebellions',
        ['community_id'],
        unique=True,
        sqlite_where=sa.text("status != 'resolved'"),
        postgresql_where=sa.text("status != 'resolved'"),
    )
    op.create_index('idx_rebellions_status_expires', 'rebellions', ['status', 'agitation_expires_at'])

    op.create_table(
        'rebellion_supports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rebellion_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['rebellion_id'], ['rebellions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rebellion_id', 'user_id', name='uq_rebellion_supports_user'),
    )

    op.create_table(
        'rebellion_negotiations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rebellion_id', sa.Integer(), nullable=False),
        sa.Column('requested_by', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('terms', sa.JSON(), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'rejected')", name='ck_negotiations_status'),
        sa.ForeignKeyConstraint(['rebellion_id'], ['rebellions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_negotiations_pending_rebellion',
        'rebellion_negotiations',
        ['rebellion_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'uprising_cooldowns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('community_id', sa.Integer(), nullable=False),
        sa.Column('rebellion_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.CheckConstraint("reason IN ('negotiation', 'failure')", name='ck_uprising_cooldowns_reason'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['rebellion_id'], ['rebellions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_uprising_cooldowns_community_expires', 'uprising_cooldowns', ['community_id', 'expires_at']
    )

    op.create_table(
        'alliances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('community_a_id', sa.Integer(), nullable=False),
        sa.Column('community_b_id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _created_at(),
        sa.CheckConstraint('community_a_id < community_b_id', name='ck_alliances_canonical'),
        sa.ForeignKeyConstraint(['community_a_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['community_b_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_alliances_a', 'alliances', ['community_a_id', 'is_active'])
    op.create_index('idx_alliances_b', 'alliances', ['community_b_id', 'is_active'])

    op.create_table(
        'war_declarations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attacker_community_id', sa.Integer(), nullable=False),
        sa.Column('defender_community_id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _created_at(),
        sa.CheckConstraint(
            'attacker_community_id != defender_community_id', name='ck_war_declarations_sides'
        ),
        sa.ForeignKeyConstraint(['attacker_community_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['defender_community_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_war_declarations_attacker', 'war_declarations', ['attacker_community_id', 'is_active']
    )

    op.create_table(
        'currency_issuances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('community_id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=True),
        sa.Column('gold_burned', sa.Float(), nullable=False),
        sa.Column('conversion_rate', sa.Float(), nullable=False),
        sa.Column('currency_minted', sa.Float(), nullable=False),
        _created_at(),
        sa.CheckConstraint('gold_burned > 0', name='ck_currency_issuances_gold'),
        sa.CheckConstraint('conversion_rate > 0', name='ck_currency_issuances_rate'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'civil_wars',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rebellion_id', sa.Integer(), nullable=False),
        sa.Column('community_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('active', 'revolutionary_win', 'government_win')", name='ck_civil_wars_status'
        ),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id']),
        sa.ForeignKeyConstraint(['rebellion_id'], ['rebellions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rebellion_id'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('civil_wars')
    op.drop_table('currency_issuances')
    op.drop_index('idx_war_declarations_attacker', table_name='war_declarations')
    op.drop_table('war_declarations')
    op.drop_index('idx_alliances_b', table_name='alliances')
    op.drop_index('idx_alliances_a', table_name='alliances')
    op.drop_table('alliances')
    op.drop_index('idx_uprising_cooldowns_community_expires', table_name='uprising_cooldowns')
    op.drop_table('uprising_cooldowns')
    op.drop_index('uq_negotiations_pending_rebellion', table_name='rebellion_negotiations')
    op.drop_table('rebellion_negotiations')
    op.drop_table('rebellion_supports')
    op.drop_index('idx_rebellions_status_expires', table_name='rebellions')
    op.drop_index('uq_rebellions_active_community', table_name='rebellions')
    op.drop_table('rebellions')
    op.drop_table('proposal_votes')
    op.drop_index('idx_proposals_expires', table_name='proposals')
    op.drop_index('idx_proposals_target_status', table_name='proposals')
    op.drop_index('idx_proposals_community_status', table_name='proposals')
    op.drop_table('proposals')
    op.drop_index('uq_community_members_sovereign', table_name='community_members')
    op.drop_index('idx_community_members_user', table_name='community_members')
    op.drop_table('community_members')
    op.drop_table('communities')
