"""Shape checks for move payloads, applied before the rule engines see them."""
import re
from typing import Any, Dict

from .base import InvalidMove
from .config import CHESS, LUDO, SNAKE, TIC_TAC_TOE

SQUARE_RE = re.compile(r"^[a-h][1-8]$")
PROMOTION_PIECES = ("q", "r", "b", "n")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def valid_dice(value) -> bool:
    return _is_int(value) and 1 <= value <= 6


def validate_chess_move(move: Dict[str, Any]) -> None:
    for key in ("from", "to"):
        if not isinstance(move.get(key), str) or not SQUARE_RE.match(move[key]):
            raise InvalidMove(f"Invalid square for '{key}'")
    promotion = move.get("promotion")
    if promotion is not None and promotion not in PROMOTION_PIECES:
        raise InvalidMove("Invalid promotion piece", valid=list(PROMOTION_PIECES))


def validate_ludo_move(move: Dict[str, Any]) -> None:
    action = move.get("action", "move")
    if action == "roll":
        if not valid_dice(move.get("diceRoll")):
            raise InvalidMove("Dice roll must be 1-6")
    elif action == "move":
        token = move.get("tokenIndex")
        if not (_is_int(token) and 0 <= token <= 3):
            raise InvalidMove("Token index must be 0-3")
    else:
        raise InvalidMove("Unknown ludo action", valid=["roll", "move"])


def validate_snake_move(move: Dict[str, Any]) -> None:
    if not valid_dice(move.get("diceRoll")):
        raise InvalidMove("Dice roll must be 1-6")


def validate_tictactoe_move(move: Dict[str, Any]) -> None:
    position = move.get("position")
    if not (_is_int(position) and 0 <= position <= 8):
        raise InvalidMove("Position must be 0-8")


VALIDATORS = {
    CHESS: validate_chess_move,
    LUDO: validate_ludo_move,
    SNAKE: validate_snake_move,
    TIC_TAC_TOE: validate_tictactoe_move,
}


def validate_move_format(game_type: str, move: Any) -> None:
    if not isinstance(move, dict):
        raise InvalidMove("Move must be an object")
    validator = VALIDATORS.get(game_type)
    if validator is None:
        raise InvalidMove("Unknown game type", gameType=game_type)
    validator(move)
