from typing import Any, Dict

from .base import GameRules, MoveOutcome
from .config import GAME_CONFIG, SNAKE

BOARD_SIZE = GAME_CONFIG[SNAKE]["boardSize"]
SNAKES = GAME_CONFIG[SNAKE]["snakes"]
LADDERS = GAME_CONFIG[SNAKE]["ladders"]


def advance(position: int, roll: int):
    """Return (new_position, jump) where jump is "snake", "ladder" or None."""
    landing = position + roll
    if landing > BOARD_SIZE:
        return position, None
    if landing in LADDERS:
        return LADDERS[landing], "ladder"
    if landing in SNAKES:
        return SNAKES[landing], "snake"
    return landing, None


class SnakeRules(GameRules):
    game_type = SNAKE

    def initial_state(self, player_count: int) -> Dict[str, Any]:
        return {"positions": [0] * player_count, "lastRoll": None}

    def apply_move(self, state, move, seat) -> MoveOutcome:
        roll = move["diceRoll"]
        positions = list(state["positions"])
        start = positions[seat]
        new_pos, jump = advance(start, roll)
        positions[seat] = new_pos

        notation = f"rolled {roll}: {start} -> {new_pos}"
        if jump:
            notation += f" ({jump})"

        won = new_pos == BOARD_SIZE
        return MoveOutcome(
            {**state, "positions": positions, "lastRoll": roll},
            notation,
            is_over=won,
            winner=seat if won else None,
        )
