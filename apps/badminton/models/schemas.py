"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


# Groups


class CreateGroupRequest(BaseModel):
    """Request to create a group with an optional initial player pool."""

    name: str = Field(min_length=1, max_length=100)
    player_names: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self):
        """Reject blank or duplicate (case-insensitive) player names."""
        cleaned = [name.strip() for name in self.player_names]
        if any(not name for name in cleaned):
            raise ValueError("Player names cannot be blank")
        if len({name.lower() for name in cleaned}) != len(cleaned):
            raise ValueError("Player names must be unique")
        return self


class AddGroupPlayerRequest(BaseModel):
    """Request to add a player to a group's pool."""

    name: str = Field(min_length=1, max_length=100)


class GroupPlayerResponse(BaseModel):
    """Group player as stored."""

    id: str
    group_id: str
    name: str
    elo_rating: int
    wins: int
    losses: int
    total_games: int


class GuestResponse(BaseModel):
    """An unlinked player seen in the group's recent sessions."""

    name: str
    session_count: int
    last_session_id: str
    last_session_name: Optional[str] = None
    last_session_date: Optional[str] = None


class PromoteGuestResponse(BaseModel):
    """New group player plus how many past session players were linked to it."""

    player: GroupPlayerResponse
    linked_players: int


# Sessions


class SessionPlayerInput(BaseModel):
    """A session roster entry; group_player_id links it to a group player."""

    name: str = Field(min_length=1, max_length=100)
    group_player_id: Optional[str] = None


class CreateSessionRequest(BaseModel):
    """Request to create a session."""

    players: List[SessionPlayerInput]
    game_mode: Literal["doubles", "singles"] = "doubles"
    group_id: Optional[str] = None
    name: Optional[str] = None
    date: Optional[datetime] = None  # If not provided, use current time
    round_robin: bool = False
    round_robin_count: Optional[int] = Field(default=None, ge=1)


class RoundRobinPreviewRequest(BaseModel):
    """Request a preview of the first few round robin games."""

    player_ids: List[str] = Field(min_length=1)
    game_mode: Literal["doubles", "singles"] = "doubles"
    max_games: Optional[int] = Field(default=None, ge=1)
    limit: int = Field(default=5, ge=1, le=50)


class ScheduledGameResponse(BaseModel):
    """An unplayed round robin game."""

    team_a: List[str]
    team_b: List[str]
    winning_team: Optional[str] = None
    game_number: Optional[int] = None


class RoundRobinPreviewResponse(BaseModel):
    """Preview of a round robin schedule."""

    games: List[ScheduledGameResponse]
    total_games: int
    used_fallback: bool


# Games


class CreateGameRequest(BaseModel):
    """Request to record a game."""

    team_a: List[str] = Field(min_length=1, max_length=2)
    team_b: List[str] = Field(min_length=1, max_length=2)
    winning_team: Optional[Literal["A", "B"]] = None
    team_a_score: Optional[int] = Field(default=None, ge=0)
    team_b_score: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_scores(self):
        """An unplayed game cannot carry scores."""
        if self.winning_team is None and (
            self.team_a_score is not None or self.team_b_score is not None
        ):
            raise ValueError("Scores require a winning team")
        return self


class UpdateGameRequest(BaseModel):
    """Request to update a game; only fields that are sent are changed."""

    team_a: Optional[List[str]] = Field(default=None, min_length=1, max_length=2)
    team_b: Optional[List[str]] = Field(default=None, min_length=1, max_length=2)
    winning_team: Optional[Literal["A", "B"]] = None
    team_a_score: Optional[int] = Field(default=None, ge=0)
    team_b_score: Optional[int] = Field(default=None, ge=0)


class GameResponse(BaseModel):
    """A game as stored."""

    id: str
    session_id: str
    game_number: int
    team_a: List[str]
    team_b: List[str]
    winning_team: Optional[str] = None
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# Stats


class LeaderboardEntryResponse(BaseModel):
    """One row of a group leaderboard."""

    group_player_id: str
    player_name: str
    elo_rating: int
    rank: int
    total_games: int
    wins: int
    losses: int
    win_rate: float
    recent_form: List[str]
    trend: Literal["up", "down", "stable"]


class EloRecalculationResponse(BaseModel):
    """Result of replaying a group's ELO history."""

    players_reset: int
    players_auto_linked: int
    games_processed: int
    skipped_games: int
    players_updated: List[str]


class PairingRecalculationResponse(BaseModel):
    """Result of rebuilding a group's pairing stats."""

    partners_updated: int
    matchups_updated: int
    games_processed: int
    skipped_games: int


class PartnerLeaderboardEntryResponse(BaseModel):
    """One partner pair on the pairing leaderboard."""

    player1_id: str
    player1_name: str
    player2_id: str
    player2_name: str
    games_played: int
    wins: int
    losses: int
    win_rate: float
    elo_rating: int
    is_qualified: bool


class PairingMatchupResponse(BaseModel):
    """Stored head-to-head record between two pairings."""

    team1_player1_id: str
    team1_player1_name: str
    team1_player2_id: str
    team1_player2_name: str
    team2_player1_id: str
    team2_player1_name: str
    team2_player2_id: str
    team2_player2_name: str
    team1_wins: int
    team1_losses: int
    total_games: int
    team1_win_rate: float
