from typing import Any, Dict

import chess

from .base import GameRules, InvalidMove, MoveOutcome
from .config import CHESS

PROMOTIONS = {"q": chess.QUEEN, "r": chess.ROOK, "b": chess.BISHOP, "n": chess.KNIGHT}
SEAT_COLORS = (chess.WHITE, chess.BLACK)


def build_move(board: chess.Board, move: Dict[str, Any]) -> chess.Move:
    from_square = chess.parse_square(move["from"])
    to_square = chess.parse_square(move["to"])
    promotion = None
    if board.piece_type_at(from_square) == chess.PAWN and chess.square_rank(to_square) in (0, 7):
        promotion = PROMOTIONS[move.get("promotion") or "q"]
    return chess.Move(from_square, to_square, promotion=promotion)


class ChessRules(GameRules):
    """Seat 0 plays white. The position travels as FEN."""

    game_type = CHESS

    def initial_state(self, player_count: int) -> Dict[str, Any]:
        return {"fen": chess.STARTING_FEN, "lastMove": None}

    def apply_move(self, state, move, seat) -> MoveOutcome:
        board = chess.Board(state["fen"])
        if board.turn != SEAT_COLORS[seat]:
            raise InvalidMove("Not your color to move")

        chess_move = build_move(board, move)
        if chess_move not in board.legal_moves:
            raise InvalidMove("Illegal move", move=chess_move.uci())

        san = board.san(chess_move)
        board.push(chess_move)
        outcome = board.outcome()

        winner = None
        if outcome is not None and outcome.winner is not None:
            winner = SEAT_COLORS.index(outcome.winner)

        return MoveOutcome(
            {
                **state,
                "fen": board.fen(),
                "lastMove": {"from": move["from"], "to": move["to"], "san": san},
                "inCheck": board.is_check(),
                "termination": outcome.termination.name.lower() if outcome else None,
            },
            san,
            is_over=outcome is not None,
            winner=winner,
        )
