"""
Ludo for 2-4 players.

Token positions are relative to the owner's start cell: -1 is base, 0-50 the
shared track, 51-56 the private home run and 57 home. Seat ``n`` starts
``13 * n`` cells further round the 52-cell shared track.

A turn is two moves: ``{"action": "roll", "diceRoll": d}`` then
``{"action": "move", "tokenIndex": i}``. A roll with nothing to move passes
the turn.
"""
from typing import Any, Dict, List

from .base import GameRules, InvalidMove, MoveOutcome
from .config import (
    LUDO,
    LUDO_BASE,
    LUDO_HOME,
    LUDO_LAST_SHARED,
    LUDO_SAFE_CELLS,
    LUDO_SEAT_OFFSET,
    LUDO_TRACK_LENGTH,
    GAME_CONFIG,
)

TOKENS = GAME_CONFIG[LUDO]["tokensPerPlayer"]


def target_position(current: int, roll: int) -> int:
    """Where a token lands, or -2 when the move is impossible."""
    if current == LUDO_BASE:
        return 0 if roll == 6 else -2
    if current == LUDO_HOME:
        return -2
    new_pos = current + roll
    return new_pos if new_pos <= LUDO_HOME else -2


def global_cell(seat: int, position: int) -> int:
    if position < 0 or position > LUDO_LAST_SHARED:
        return -1
    return (position + seat * LUDO_SEAT_OFFSET) % LUDO_TRACK_LENGTH


def movable_tokens(positions: List[int], roll: int) -> List[int]:
    return [i for i, pos in enumerate(positions) if target_position(pos, roll) != -2]


class LudoRules(GameRules):
    game_type = LUDO

    def initial_state(self, player_count: int) -> Dict[str, Any]:
        return {
            "positions": [[LUDO_BASE] * TOKENS for _ in range(player_count)],
            "pendingRoll": None,
        }

    def movable_tokens(self, state: Dict[str, Any], seat: int, roll: int) -> List[int]:
        return movable_tokens(state["positions"][seat], roll)

    def apply_move(self, state, move, seat) -> MoveOutcome:
        action = move.get("action", "move")
        if action == "roll":
            return self._roll(state, move, seat)
        if action == "move":
            return self._move(state, move, seat)
        raise InvalidMove("Unknown ludo action", valid=["roll", "move"])

    def _roll(self, state, move, seat) -> MoveOutcome:
        if state.get("pendingRoll") is not None:
            raise InvalidMove("Dice already rolled; move a token")
        roll = move["diceRoll"]
        movable = movable_tokens(state["positions"][seat], roll)
        new_state = {**state, "pendingRoll": roll if movable else None}
        if not movable:
            return MoveOutcome(new_state, f"rolled {roll}, no moves")
        return MoveOutcome(new_state, f"rolled {roll}", keep_turn=True)

    def _move(self, state, move, seat) -> MoveOutcome:
        roll = state.get("pendingRoll")
        if roll is None:
            raise InvalidMove("Roll the dice first")
        token = move.get("tokenIndex")
        mine = list(state["positions"][seat])
        previous = mine[token]
        new_pos = target_position(previous, roll)
        if new_pos == -2:
            raise InvalidMove("Token cannot move", movableTokens=movable_tokens(mine, roll))

        positions = [list(p) for p in state["positions"]]
        mine[token] = new_pos
        positions[seat] = mine

        captured = []
        cell = global_cell(seat, new_pos)
        if cell >= 0 and cell not in LUDO_SAFE_CELLS:
            for other_seat, tokens in enumerate(positions):
                if other_seat == seat:
                    continue
                for i, pos in enumerate(tokens):
                    if global_cell(other_seat, pos) == cell:
                        tokens[i] = LUDO_BASE
                        captured.append((other_seat, i))

        won = all(pos == LUDO_HOME for pos in mine)
        notation = f"token {token}: {'base' if previous == LUDO_BASE else previous} -> {new_pos}"
        if captured:
            notation += " capture " + ",".join(f"{s}:{i}" for s, i in captured)

        return MoveOutcome(
            {**state, "positions": positions, "pendingRoll": None},
            notation,
            keep_turn=not won and (roll == 6 or bool(captured) or new_pos == LUDO_HOME),
            is_over=won,
            winner=seat if won else None,
        )
