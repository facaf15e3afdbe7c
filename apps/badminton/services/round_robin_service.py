"""
Round robin schedule generation.

Produces unplayed games that rotate partners and opponents:
- singles: every 1v1 pairing once
- doubles, 4 players: the 3 ways to split into two teams (cycled if more are requested)
- doubles, 5 players: each player sits out once, 3 games per rotation (15 games)
- doubles, 6 players: greedy selection capping how often a pair partners up
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from badminton.utils.constants import (
    MAX_PARTNER_REPEATS,
    MIN_DOUBLES_PLAYERS,
    MIN_SINGLES_PLAYERS,
    SIX_PLAYER_GAME_TARGET,
)
from badminton.utils.pair_keys import pair_key

logger = logging.getLogger(__name__)

Matchup = Tuple[List[str], List[str]]


@dataclass
class RoundRobinSchedule:
    """Generated games plus whether the six-player fallback was used."""

    games: List[Dict] = field(default_factory=list)
    used_fallback: bool = False


def _scheduled_game(team_a: Sequence[str], team_b: Sequence[str]) -> Dict:
    return {"team_a": list(team_a), "team_b": list(team_b), "winning_team": None}


def _four_player_splits(ids: Sequence[str]) -> List[Matchup]:
    """A&B vs C&D, A&C vs B&D, A&D vs B&C."""
    return [
        ([ids[0], ids[1]], [ids[2], ids[3]]),
        ([ids[0], ids[2]], [ids[1], ids[3]]),
        ([ids[0], ids[3]], [ids[1], ids[2]]),
    ]


def _truncate(matchups: List[Matchup], max_games: Optional[int]) -> List[Matchup]:
    if max_games is not None and max_games < len(matchups):
        return matchups[:max_games]
    return matchups


def _singles(ids: Sequence[str], max_games: Optional[int]) -> List[Matchup]:
    matchups = [([a], [b]) for a, b in combinations(ids, 2)]
    return _truncate(matchups, max_games)


def _four_players(ids: Sequence[str], max_games: Optional[int]) -> List[Matchup]:
    base = _four_player_splits(ids)
    if max_games is None or max_games <= len(base):
        return _truncate(base, max_games)
    # Repeat the same three matchups in cycles
    return [base[i % len(base)] for i in range(max_games)]


def _five_players(ids: Sequence[str], max_games: Optional[int]) -> List[Matchup]:
    matchups: List[Matchup] = []
    for sitting_out in ids:
        playing = [player_id for player_id in ids if player_id != sitting_out]
        matchups.extend(_four_player_splits(playing))
    return _truncate(matchups, max_games)


def _six_player_candidates(ids: Sequence[str]) -> List[Matchup]:
    """Every distinct 2v2 game, deduplicated regardless of side."""
    seen = set()
    candidates: List[Matchup] = []
    n = len(ids)
    for i in range(n):
        for j in range(i + 1, n):
            for k in range(n):
                if k in (i, j):
                    continue
                for l in range(k + 1, n):
                    if l in (i, j):
                        continue
                    game_key = "|".join(sorted([
                        ",".join(sorted([ids[i], ids[j]])),
                        ",".join(sorted([ids[k], ids[l]])),
                    ]))
                    if game_key in seen:
                        continue
                    seen.add(game_key)
                    candidates.append(([ids[i], ids[j]], [ids[k], ids[l]]))
    return candidates


def _six_players(ids: Sequence[str], max_games: Optional[int]) -> Tuple[List[Matchup], bool]:
    candidates = _six_player_candidates(ids)
    target = SIX_PLAYER_GAME_TARGET if max_games is None else min(max_games, SIX_PLAYER_GAME_TARGET)

    partner_count: Dict[str, int] = {}
    selected: List[Matchup] = []
    for team_a, team_b in candidates:
        if len(selected) >= target:
            break
        key_a = pair_key(*team_a)
        key_b = pair_key(*team_b)
        if partner_count.get(key_a, 0) < MAX_PARTNER_REPEATS and partner_count.get(key_b, 0) < MAX_PARTNER_REPEATS:
            selected.append((team_a, team_b))
            partner_count[key_a] = partner_count.get(key_a, 0) + 1
            partner_count[key_b] = partner_count.get(key_b, 0) + 1

    if len(selected) < target:
        logger.warning(
            f"Six-player round robin selected {len(selected)}/{target} games under the "
            f"partner cap; falling back to the first {target} candidates"
        )
        return candidates[:target], True
    return selected, False


def build_round_robin_schedule(
    player_ids: Sequence[str],
    max_games: Optional[int] = None,
    game_mode: str = "doubles",
) -> RoundRobinSchedule:
    """
    Generate a round robin schedule.

    Args:
        player_ids: Session player ids, in roster order (order drives the output)
        max_games: Optional cap on the number of games
        game_mode: "doubles" or "singles"

    Returns:
        RoundRobinSchedule with unplayed games ({team_a, team_b, winning_team=None})
    """
    ids = list(player_ids)
    n = len(ids)

    if game_mode == "singles":
        if n < MIN_SINGLES_PLAYERS:
            return RoundRobinSchedule()
        matchups = _singles(ids, max_games)
        return RoundRobinSchedule(games=[_scheduled_game(a, b) for a, b in matchups])

    if game_mode != "doubles":
        raise ValueError(f"Unknown game mode: {game_mode}")

    used_fallback = False
    if n < MIN_DOUBLES_PLAYERS:
        matchups = []
    elif n == 4:
        matchups = _four_players(ids, max_games)
    elif n == 5:
        matchups = _five_players(ids, max_games)
    elif n == 6:
        matchups, used_fallback = _six_players(ids, max_games)
    else:
        logger.warning(f"Round robin doubles supports at most 6 players, got {n}")
        matchups = []

    return RoundRobinSchedule(
        games=[_scheduled_game(a, b) for a, b in matchups],
        used_fallback=used_fallback,
    )


def generate_round_robin_games(
    player_ids: Sequence[str],
    max_games: Optional[int] = None,
    game_mode: str = "doubles",
) -> List[Dict]:
    """Generate round robin games; see build_round_robin_schedule."""
    return build_round_robin_schedule(player_ids, max_games, game_mode).games


def preview_round_robin_games(
    player_ids: Sequence[str],
    game_mode: str = "doubles",
    max_games: int = 5,
) -> List[Dict]:
    """First few games of the uncapped schedule."""
    return generate_round_robin_games(player_ids, None, game_mode)[:max_games]


def to_scheduled_games(games: Sequence[Dict], start_number: int = 1) -> List[Dict]:
    """Attach sequential 1-based game numbers in schedule order."""
    return [
        {**game, "game_number": start_number + index}
        for index, game in enumerate(games)
    ]
