"""
SQLAlchemy ORM models for the league admin partnership lifecycle.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from league_admin.database.db import Base


class PartnershipStatus(str, enum.Enum):
    """Partnership lifecycle status enum."""

    ACTIVE = "ACTIVE"
    FORMING = "FORMING"
    DISSOLVED = "DISSOLVED"
    EXPIRED = "EXPIRED"


# Statuses in which a partnership still occupies its players' slots
OPEN_PARTNERSHIP_STATUSES = (PartnershipStatus.ACTIVE.value, PartnershipStatus.FORMING.value)
# Statuses a partnership never leaves
TERMINAL_PARTNERSHIP_STATUSES = (
    PartnershipStatus.DISSOLVED.value,
    PartnershipStatus.EXPIRED.value,
)


class WithdrawalRequestStatus(str, enum.Enum):
    """Withdrawal request status enum."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UserRole(str, enum.Enum):
    """Dashboard account role."""

    PLAYER = "player"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


_OPEN_STATUS_SQL = "status IN ('ACTIVE', 'FORMING')"


class User(Base):
    """Dashboard accounts (players and admins)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    role = Column(String(20), default=UserRole.PLAYER.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    players = relationship("Player", back_populates="user")

    __table_args__ = (
        CheckConstraint(
            f"role IN ({', '.join(repr(e.value) for e in UserRole)})",
            name="ck_users_role_valid",
        ),
        Index("idx_users_email", "email"),
    )


class Player(Base):
    """Player profiles."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    avatar = Column(String, nullable=True)  # Can store initials (e.g., "JD") or image URL
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="players")

    __table_args__ = (
        Index("idx_players_name", "full_name"),
        Index("idx_players_user", "user_id"),
    )


class League(Base):
    """League groups."""

    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    sport = Column(String(20), nullable=True)  # 'tennis', 'pickleball', 'padel'
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    seasons = relationship("Season", back_populates="league")


class Season(Base):
    """Seasons within leagues."""

    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    league = relationship("League", back_populates="seasons")
    divisions = relationship("Division", back_populates="season")

    __table_args__ = (Index("idx_seasons_league", "league_id"),)


class Division(Base):
    """Competitive divisions within a season."""

    __tablename__ = "divisions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    season = relationship("Season", back_populates="divisions")

    __table_args__ = (
        UniqueConstraint("season_id", "name", name="uq_divisions_season_name"),
        Index("idx_divisions_season", "season_id"),
    )


class Partnership(Base):
    """Doubles partnership (captain + partner) registered in a division/season.

    Status transitions: FORMING -> ACTIVE, ACTIVE -> DISSOLVED, ACTIVE -> EXPIRED.
    Successors point at the partnership they replaced through ``predecessor_id``.
    """

    __tablename__ = "partnerships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    captain_id = Column(Integer, ForeignKey("players.id"), nullable=True)
    partner_id = Column(Integer, ForeignKey("players.id"), nullable=True)
    division_id = Column(Integer, ForeignKey("divisions.id"), nullable=False)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    status = Column(String(20), default=PartnershipStatus.ACTIVE.value, nullable=False)
    pair_rating = Column(Float, nullable=True)
    predecessor_id = Column(Integer, ForeignKey("partnerships.id"), nullable=True)
    withdrawal_request_id = Column(Integer, nullable=True)  # Request that caused dissolution
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    dissolved_at = Column(DateTime(timezone=True), nullable=True)
    partner_joined_at = Column(DateTime(timezone=True), nullable=True)  # Set when a FORMING slot is filled

    # Relationships
    captain = relationship("Player", foreign_keys=[captain_id])
    partner = relationship("Player", foreign_keys=[partner_id])
    division = relationship("Division")
    season = relationship("Season")
    predecessor = relationship("Partnership", remote_side="Partnership.id")
    withdrawal_requests = relationship(
        "WithdrawalRequest",
        back_populates="partnership",
        order_by="WithdrawalRequest.id",
    )

    __table_args__ = (
        CheckConstraint(
            f"status IN ({', '.join(repr(e.value) for e in PartnershipStatus)})",
            name="ck_partnerships_status_valid",
        ),
        # FORMING <=> exactly one open slot (the partner)
        CheckConstraint(
            "(status = 'FORMING' AND (captain_id IS NULL) <> (partner_id IS NULL)) "
            "OR (status <> 'FORMING' AND captain_id IS NOT NULL AND partner_id IS NOT NULL)",
            name="ck_partnerships_slots",
        ),
        CheckConstraint(
            "(status = 'DISSOLVED') = (dissolved_at IS NOT NULL)",
            name="ck_partnerships_dissolved_at",
        ),
        Index("idx_partnerships_predecessor", "predecessor_id"),
        Index("idx_partnerships_season_division", "season_id", "division_id"),
        Index("idx_partnerships_status", "status"),
        # No double-booking while a partnership is open
        Index(
            "uq_partnerships_open_captain",
            "captain_id",
            "division_id",
            "season_id",
            unique=True,
            postgresql_where=text(_OPEN_STATUS_SQL),
            sqlite_where=text(_OPEN_STATUS_SQL),
        ),
        Index(
            "uq_partnerships_open_partner",
            "partner_id",
            "division_id",
            "season_id",
            unique=True,
            postgresql_where=text(_OPEN_STATUS_SQL),
            sqlite_where=text(_OPEN_STATUS_SQL),
        ),
    )


class WithdrawalRequest(Base):
    """A player's request to leave an active partnership.

    Status transitions: PENDING -> APPROVED | REJECTED (both terminal).
    """

    __tablename__ = "withdrawal_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    partnership_id = Column(Integer, ForeignKey("partnerships.id"), nullable=False)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    requesting_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(
        String(20),
        default=WithdrawalRequestStatus.PENDING.value,
        nullable=False,
        server_default=WithdrawalRequestStatus.PENDING.value,
    )
    request_date = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by_admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    admin_notes = Column(Text, nullable=True)

    # Relationships
    partnership = relationship("Partnership", back_populates="withdrawal_requests")
    requesting_player = relationship("Player", foreign_keys=[requesting_player_id])
    processed_by_admin = relationship("User", foreign_keys=[processed_by_admin_id])

    __table_args__ = (
        CheckConstraint(
            f"status IN ({', '.join(repr(e.value) for e in WithdrawalRequestStatus)})",
            name="ck_withdrawal_requests_status_valid",
        ),
        Index("idx_withdrawal_requests_partnership", "partnership_id"),
        Index("idx_withdrawal_requests_status", "status"),
        Index("idx_withdrawal_requests_season", "season_id"),
        # At most one PENDING request per partnership
        Index(
            "uq_withdrawal_requests_one_pending",
            "partnership_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )
