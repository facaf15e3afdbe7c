"""
In-memory representation of a game used by the aggregation services.

Team membership is stored as a JSON array, and depending on the driver it can
come back either as a list or as a JSON-encoded string. Rows are normalised
here, at the store-read boundary, so the aggregation code only ever sees
tuples of 1 or 2 player ids.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MalformedTeamError(ValueError):
    """Raised when stored team membership cannot be read as 1-2 player ids."""


def parse_team_ids(value: Any) -> Tuple[str, ...]:
    """
    Parse a team column (list or JSON string) into a tuple of player ids.

    Raises:
        MalformedTeamError: If the value is not a list of 1 or 2 ids
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise MalformedTeamError(f"Team is not valid JSON: {value!r}") from e

    if not isinstance(value, (list, tuple)):
        raise MalformedTeamError(f"Team must be an array, got {type(value).__name__}")
    if len(value) not in (1, 2):
        raise MalformedTeamError(f"Team must have 1 or 2 players, got {len(value)}")
    if any(player_id is None or isinstance(player_id, (list, dict)) for player_id in value):
        raise MalformedTeamError(f"Team contains invalid player ids: {value!r}")

    return tuple(str(player_id) for player_id in value)


@dataclass(frozen=True)
class GameRecord:
    """A game with parsed teams."""

    id: str
    session_id: str
    game_number: int
    team_a: Tuple[str, ...]
    team_b: Tuple[str, ...]
    winning_team: Optional[str]
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_played(self) -> bool:
        return self.winning_team is not None

    @property
    def is_doubles(self) -> bool:
        return len(self.team_a) == 2 and len(self.team_b) == 2

    @property
    def has_scores(self) -> bool:
        return self.team_a_score is not None and self.team_b_score is not None

    @classmethod
    def from_row(cls, row: Any) -> "GameRecord":
        """
        Build a record from a Game ORM object or a dict with the same keys.

        Raises:
            MalformedTeamError: If either team cannot be parsed
        """
        get = row.get if isinstance(row, dict) else lambda key: getattr(row, key, None)
        return cls(
            id=get("id"),
            session_id=get("session_id"),
            game_number=get("game_number"),
            team_a=parse_team_ids(get("team_a")),
            team_b=parse_team_ids(get("team_b")),
            winning_team=get("winning_team"),
            team_a_score=get("team_a_score"),
            team_b_score=get("team_b_score"),
            created_at=get("created_at"),
        )


def to_game_records(rows: Iterable[Any]) -> Tuple[List[GameRecord], int]:
    """
    Convert rows to GameRecords, skipping rows with malformed teams.

    Returns:
        Tuple of (records in input order, number of rows skipped)
    """
    records: List[GameRecord] = []
    skipped = 0
    for row in rows:
        try:
            records.append(GameRecord.from_row(row))
        except MalformedTeamError as e:
            skipped += 1
            game_id = row.get("id") if isinstance(row, dict) else getattr(row, "id", None)
            logger.warning(f"Skipping game {game_id} with malformed team data: {e}")
    return records, skipped
