from .base import GameRules, InvalidMove, MoveOutcome
from .chess_rules import ChessRules
from .config import CHESS, GAME_CONFIG, GAME_TYPES, LUDO, SNAKE, TIC_TAC_TOE
from .ludo import LudoRules
from .snake import SnakeRules
from .tictactoe import TicTacToeRules

RULES = {
    CHESS: ChessRules(),
    LUDO: LudoRules(),
    SNAKE: SnakeRules(),
    TIC_TAC_TOE: TicTacToeRules(),
}


def get_rules(game_type: str) -> GameRules:
    try:
        return RULES[game_type]
    except KeyError:
        raise InvalidMove("Unknown game type", gameType=game_type)


__all__ = [
    "GAME_CONFIG",
    "GAME_TYPES",
    "GameRules",
    "InvalidMove",
    "MoveOutcome",
    "get_rules",
]
