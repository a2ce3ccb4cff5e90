"""partnership_lifecycle

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Initial schema: users, players, leagues, seasons, divisions, partnerships and
withdrawal_requests. Partial unique indexes enforce one PENDING request per
partnership and no double-booked player in an open partnership.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import text


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_STATUS_SQL = "status IN ('ACTIVE', 'FORMING')"


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
    )


def upgrade() -> None:
    """Create reference tables, partnerships and withdrawal_requests."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="player"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint(
            "role IN ('player', 'admin', 'superadmin')", name="ck_users_role_valid"
        ),
    )
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("avatar", sa.String(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_players_name", "players", ["full_name"])
    op.create_index("idx_players_user", "players", ["user_id"])

    op.create_table(
        "leagues",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("sport", sa.String(20), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "seasons",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("league_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["league_id"], ["leagues.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_seasons_league", "seasons", ["league_id"])

    op.create_table(
        "divisions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("season_id", "name", name="uq_divisions_season_name"),
    )
    op.create_index("idx_divisions_season", "divisions", ["season_id"])

    op.create_table(
        "partnerships",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("captain_id", sa.Integer(), nullable=True),
        sa.Column("partner_id", sa.Integer(), nullable=True),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("pair_rating", sa.Float(), nullable=True),
        sa.Column("predecessor_id", sa.Integer(), nullable=True),
        sa.Column("withdrawal_request_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column("dissolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("partner_joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["captain_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["partner_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["division_id"], ["divisions.id"]),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.ForeignKeyConstraint(["predecessor_id"], ["partnerships.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'FORMING', 'DISSOLVED', 'EXPIRED')",
            name="ck_partnerships_status_valid",
        ),
        sa.CheckConstraint(
            "(status = 'FORMING' AND (captain_id IS NULL) <> (partner_id IS NULL)) "
            "OR (status <> 'FORMING' AND captain_id IS NOT NULL AND partner_id IS NOT NULL)",
            name="ck_partnerships_slots",
        ),
        sa.CheckConstraint(
            "(status = 'DISSOLVED') = (dissolved_at IS NOT NULL)",
            name="ck_partnerships_dissolved_at",
        ),
    )
    op.create_index("idx_partnerships_predecessor", "partnerships", ["predecessor_id"])
    op.create_index(
        "idx_partnerships_season_division", "partnerships", ["season_id", "division_id"]
    )
    op.create_index("idx_partnerships_status", "partnerships", ["status"])
    op.create_index(
        "uq_partnerships_open_captain",
        "partnerships",
        ["captain_id", "division_id", "season_id"],
        unique=True,
        postgresql_where=text(OPEN_STATUS_SQL),
    )
    op.create_index(
        "uq_partnerships_open_partner",
        "partnerships",
        ["partner_id", "division_id", "season_id"],
        unique=True,
        postgresql_where=text(OPEN_STATUS_SQL),
    )

    op.create_table(
        "withdrawal_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("partnership_id", sa.Integer(), nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("requesting_player_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column(
            "request_date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by_admin_id", sa.Integer(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["partnership_id"], ["partnerships.id"]),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.ForeignKeyConstraint(["requesting_player_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["processed_by_admin_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_withdrawal_requests_status_valid",
        ),
    )
    op.create_index(
        "idx_withdrawal_requests_partnership", "withdrawal_requests", ["partnership_id"]
    )
    op.create_index("idx_withdrawal_requests_status", "withdrawal_requests", ["status"])
    op.create_index("idx_withdrawal_requests_season", "withdrawal_requests", ["season_id"])
    op.create_index(
        "uq_withdrawal_requests_one_pending",
        "withdrawal_requests",
        ["partnership_id"],
        unique=True,
        postgresql_where=text("status = 'PENDING'"),
    )


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_index("uq_withdrawal_requests_one_pending", table_name="withdrawal_requests")
    op.drop_index("idx_withdrawal_requests_season", table_name="withdrawal_requests")
    op.drop_index("idx_withdrawal_requests_status", table_name="withdrawal_requests")
    op.drop_index("idx_withdrawal_requests_partnership", table_name="withdrawal_requests")
    op.drop_table("withdrawal_requests")

    op.drop_index("uq_partnerships_open_partner", table_name="partnerships")
    op.drop_index("uq_partnerships_open_captain", table_name="partnerships")
    op.drop_index("idx_partnerships_status", table_name="partnerships")
    op.drop_index("idx_partnerships_season_division", table_name="partnerships")
    op.drop_index("idx_partnerships_predecessor", table_name="partnerships")
    op.drop_table("partnerships")

    op.drop_index("idx_divisions_season", table_name="divisions")
    op.drop_table("divisions")
    op.drop_index("idx_seasons_league", table_name="seasons")
    op.drop_table("seasons")
    op.drop_table("leagues")
    op.drop_index("idx_players_user", table_name="players")
    op.drop_index("idx_players_name", table_name="players")
    op.drop_table("players")
    op.drop_index("idx_users_email", table_name="users")
    op.drop_table("users")
