from typing import Any, Dict, List, Optional

from .base import GameRules, InvalidMove, MoveOutcome
from .config import TIC_TAC_TOE

MARKS = ("X", "O")
WINNING_LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)


def winning_mark(board: List[Optional[str]]) -> Optional[str]:
    for a, b, c in WINNING_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return board[a]
    return None


class TicTacToeRules(GameRules):
    game_type = TIC_TAC_TOE

    def initial_state(self, player_count: int) -> Dict[str, Any]:
        return {"board": [None] * 9}

    def apply_move(self, state, move, seat) -> MoveOutcome:
        position = move["position"]
        board = list(state["board"])
        if board[position] is not None:
            raise InvalidMove("Cell already taken", position=position)

        mark = MARKS[seat]
        board[position] = mark
        winner = winning_mark(board)
        full = all(cell is not None for cell in board)

        return MoveOutcome(
            {**state, "board": board},
            f"{mark}{position}",
            is_over=bool(winner) or full,
            winner=MARKS.index(winner) if winner else None,
        )
