CHESS = "chess"
LUDO = "ludo"
SNAKE = "snake"
TIC_TAC_TOE = "tictactoe"

GAME_TYPES = (CHESS, LUDO, SNAKE, TIC_TAC_TOE)

GAME_CONFIG = {
    CHESS: {
        "minPlayers": 2,
        "maxPlayers": 2,
        "colors": ["white", "black"],
        "displayName": "Chess Master",
    },
    LUDO: {
        "minPlayers": 2,
        "maxPlayers": 4,
        "colors": ["red", "green", "blue", "yellow"],
        "displayName": "Ludo King",
        "tokensPerPlayer": 4,
    },
    SNAKE: {
        "minPlayers": 2,
        "maxPlayers": 4,
        "colors": ["blue", "red", "green", "yellow"],
        "displayName": "Snake & Ladders",
        "boardSize": 100,
        "snakes": {
            99: 78, 95: 75, 92: 88, 89: 68, 74: 53,
            64: 60, 62: 19, 49: 11, 46: 25, 16: 6,
        },
        "ladders": {
            2: 38, 7: 14, 8: 31, 15: 26, 21: 42,
            28: 84, 36: 44, 51: 67, 71: 91, 78: 98,
        },
    },
    TIC_TAC_TOE: {
        "minPlayers": 2,
        "maxPlayers": 2,
        "colors": ["X", "O"],
        "displayName": "Tic-Tac-Toe",
    },
}

# Ludo track: -1 base, 0-50 shared track, 51-56 home run, 57 home.
LUDO_BASE = -1
LUDO_LAST_SHARED = 50
LUDO_HOME = 57
LUDO_TRACK_LENGTH = 52
LUDO_SEAT_OFFSET = 13
LUDO_SAFE_CELLS = frozenset({0, 8, 13, 21, 26, 34, 39, 47})

GAME_STATUSES = ("waiting", "in_progress", "finished", "cancelled")


def player_color(game_type: str, seat: int) -> str:
    colors = GAME_CONFIG.get(game_type, {}).get("colors")
    if not colors:
        return "player"
    return colors[seat % len(colors)]
