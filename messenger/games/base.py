from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..errors import InvalidInput


class InvalidMove(InvalidInput):
    def __init__(self, message: str, **extra):
        super().__init__("invalid_move", message, **extra)


@dataclass
class MoveOutcome:
    """What a move did. ``winner`` is a seat index; ``keep_turn`` grants another move."""
    state: Dict[str, Any]
    notation: str
    keep_turn: bool = False
    is_over: bool = False
    winner: Optional[int] = None


class GameRules:
    """
    Rule engine interface. States are plain dicts so they can be stored in
    Firestore as-is; players are addressed by seat index.
    """

    game_type = ""

    def initial_state(self, player_count: int) -> Dict[str, Any]:
        raise NotImplementedError

    def apply_move(self, state: Dict[str, Any], move: Dict[str, Any], seat: int) -> MoveOutcome:
        """Validate and apply ``move``; raise InvalidMove when illegal. Must not mutate ``state``."""
        raise NotImplementedError

    def validate_move(self, state: Dict[str, Any], move: Dict[str, Any], seat: int) -> bool:
        try:
            self.apply_move(state, move, seat)
        except InvalidMove:
            return False
        return True

    def play(self, state: Dict[str, Any], move: Dict[str, Any], seat: int) -> MoveOutcome:
        """apply_move, with the result stamped into the state for is_over/winner."""
        outcome = self.apply_move(state, move, seat)
        outcome.state = {**outcome.state, "isOver": outcome.is_over, "winnerSeat": outcome.winner}
        return outcome

    def is_over(self, state: Dict[str, Any]) -> bool:
        return bool(state.get("isOver"))

    def winner(self, state: Dict[str, Any]) -> Optional[int]:
        return state.get("winnerSeat")
