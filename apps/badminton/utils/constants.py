"""
Constants used across scheduling, rating and stats aggregation.
"""

# ELO calculation constants
DEFAULT_ELO = 1500
K_FACTOR = 32
MIN_RATING = 100  # Ratings never drop below this floor

# Leaderboard / detailed stats windows
LEADERBOARD_FORM_LENGTH = 5
DETAILED_HISTORY_LENGTH = 10

# A loss (unlucky) or win (clutch) decided by this many points or fewer
CLOSE_GAME_MAX_MARGIN = 2

# Pairings need this many games together to be ranked as "qualified"
PAIRING_MIN_GAMES_QUALIFIED = 5

# Pairing stats full rebuild may run once per group per window
RECALCULATION_COOLDOWN_SECONDS = 5 * 60

# Session roster limits
MIN_SINGLES_PLAYERS = 2
MIN_DOUBLES_PLAYERS = 4
MAX_SESSION_PLAYERS = 6

# Six-player doubles round robin
SIX_PLAYER_GAME_TARGET = 15
MAX_PARTNER_REPEATS = 2

# Unlinked session players from this many days back are offered as guests
GUEST_LOOKBACK_DAYS = 30
