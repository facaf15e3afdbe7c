"""
SQLAlchemy ORM models for the badminton session tracker.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    JSON,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from badminton.database.db import Base
from badminton.utils.constants import DEFAULT_ELO
from badminton.utils.datetime_utils import utcnow


def generate_id() -> str:
    """Generate a string primary key."""
    return uuid.uuid4().hex


class GameMode(str, enum.Enum):
    """Session game mode enum."""

    DOUBLES = "doubles"
    SINGLES = "singles"


class WinningTeam(str, enum.Enum):
    """Which side won a game."""

    A = "A"
    B = "B"


class Group(Base):
    """Recurring group of players sharing long-term stats."""

    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    shareable_link = Column(String(50), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    players = relationship("GroupPlayer", back_populates="group", passive_deletes=True)
    sessions = relationship("Session", back_populates="group", passive_deletes=True)


class GroupPlayer(Base):
    """Durable player identity within a group."""

    __tablename__ = "group_players"

    id = Column(String, primary_key=True, default=generate_id)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    elo_rating = Column(Integer, default=DEFAULT_ELO, nullable=False)
    # Stored counters are maintained incrementally and may drift; leaderboards
    # always recompute from games.
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    total_games = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    group = relationship("Group", back_populates="players")

    __table_args__ = (Index("idx_group_players_group_id", "group_id"),)


class Session(Base):
    """One occasion of play with a fixed roster."""

    __tablename__ = "sessions"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=True)
    date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    game_mode = Column(String(10), nullable=False, default=GameMode.DOUBLES.value)
    round_robin_count = Column(Integer, nullable=True)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    group = relationship("Group", back_populates="sessions")
    players = relationship("Player", back_populates="session", passive_deletes=True)
    games = relationship("Game", back_populates="session", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("game_mode IN ('doubles', 'singles')", name="ck_sessions_game_mode"),
        Index("idx_sessions_group_id", "group_id"),
    )


class Player(Base):
    """Session-scoped player; guests have no group_player_id."""

    __tablename__ = "players"

    id = Column(String, primary_key=True, default=generate_id)
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    group_player_id = Column(String, ForeignKey("group_players.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    session = relationship("Session", back_populates="players")

    __table_args__ = (
        Index("idx_players_session_id", "session_id"),
        Index("idx_players_group_player_id", "group_player_id"),
    )


class Game(Base):
    """A scheduled or played game. winning_team is NULL until played."""

    __tablename__ = "games"

    id = Column(String, primary_key=True)  # "{session_id}-game-{game_number}"
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    game_number = Column(Integer, nullable=False)
    team_a = Column(JSON, nullable=False)  # list of session player ids
    team_b = Column(JSON, nullable=False)
    winning_team = Column(String(1), nullable=True)
    team_a_score = Column(Integer, nullable=True)
    team_b_score = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    session = relationship("Session", back_populates="games")

    __table_args__ = (
        UniqueConstraint("session_id", "game_number", name="uq_games_session_game_number"),
        CheckConstraint(
            "winning_team IS NULL OR winning_team IN ('A', 'B')", name="ck_games_winning_team"
        ),
        Index("idx_games_session_id", "session_id"),
    )


class PartnerStats(Base):
    """Record of two group players as teammates. player1_id < player2_id."""

    __tablename__ = "partner_stats"

    id = Column(String, primary_key=True, default=generate_id)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    player1_id = Column(String, ForeignKey("group_players.id", ondelete="CASCADE"), nullable=False)
    player2_id = Column(String, ForeignKey("group_players.id", ondelete="CASCADE"), nullable=False)
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    total_games = Column(Integer, default=0, nullable=False)
    elo_rating = Column(Integer, default=DEFAULT_ELO, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)  # +wins / -losses
    best_win_streak = Column(Integer, default=0, nullable=False)
    points_for = Column(Integer, default=0, nullable=False)
    points_against = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("group_id", "player1_id", "player2_id", name="partner_stats_unique"),
        CheckConstraint("player1_id < player2_id", name="partner_stats_order"),
        Index("idx_partner_stats_group", "group_id"),
    )


class PairingMatchup(Base):
    """Head-to-head record between two pairings, from team1's perspective."""

    __tablename__ = "pairing_matchups"

    id = Column(String, primary_key=True, default=generate_id)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    team1_player1_id = Column(String, ForeignKey("group_players.id", ondelete="CASCADE"), nullable=False)
    team1_player2_id = Column(String, ForeignKey("group_players.id", ondelete="CASCADE"), nullable=False)
    team2_player1_id = Column(String, ForeignKey("group_players.id", ondelete="CASCADE"), nullable=False)
    team2_player2_id = Column(String, ForeignKey("group_players.id", ondelete="CASCADE"), nullable=False)
    team1_wins = Column(Integer, default=0, nullable=False)
    team1_losses = Column(Integer, default=0, nullable=False)
    total_games = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "group_id",
            "team1_player1_id",
            "team1_player2_id",
            "team2_player1_id",
            "team2_player2_id",
            name="pairing_matchups_unique",
        ),
        CheckConstraint("team1_player1_id < team1_player2_id", name="pairing_matchups_team1_order"),
        CheckConstraint("team2_player1_id < team2_player2_id", name="pairing_matchups_team2_order"),
        CheckConstraint(
            "(team1_player1_id || team1_player2_id) < (team2_player1_id || team2_player2_id)",
            name="pairing_matchups_teams_order",
        ),
        Index("idx_pairing_matchups_group", "group_id"),
    )
