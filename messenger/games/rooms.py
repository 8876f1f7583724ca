"""
Game room lifecycle: create, join, start, move, resign and per-player stats.

Rooms are documents in the ``games`` collection. ``players`` is the list of
user ids in seat order, ``turn`` the seat to move. All functions return the
top-level fields to update so they can run inside a Firestore transaction.
"""
import random
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..errors import Conflict, InvalidInput, NotFound, PermissionDenied
from ..utils import now_millis, random_suffix, sort_key_datetime
from . import get_rules
from .config import GAME_CONFIG, GAME_TYPES, LUDO, SNAKE, player_color
from .validators import validate_move_format

DICE_GAMES = (LUDO, SNAKE)


def roll_dice(rng: Optional[random.Random] = None) -> int:
    return (rng or random).randint(1, 6)


def create_game(chat_id: Optional[str], creator_id: str, game_type: str, now) -> Dict[str, Any]:
    if game_type not in GAME_TYPES:
        raise InvalidInput("invalid_game_type", f"gameType must be one of {list(GAME_TYPES)}")

    config = GAME_CONFIG[game_type]
    return {
        "id": f"game_{now_millis()}_{random_suffix()}",
        "type": game_type,
        "chatId": chat_id,
        "createdBy": creator_id,
        "players": [creator_id],
        "colors": {creator_id: player_color(game_type, 0)},
        "resigned": [],
        "minPlayers": config["minPlayers"],
        "maxPlayers": config["maxPlayers"],
        "status": "waiting",
        "turn": 0,
        "state": None,
        "moveHistory": [],
        "result": None,
        "createdAt": now,
        "updatedAt": now,
    }


def require_game(game: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not game:
        raise NotFound("game_not_found", "Game not found")
    return game


def can_join(game: Optional[Dict[str, Any]], user_id: str) -> bool:
    if not game or game.get("status") == "finished":
        return False
    if user_id in game.get("players", []):
        return True
    if len(game.get("players", [])) >= game.get("maxPlayers", 0):
        return False
    return game.get("status") == "waiting"


def join_updates(game: Dict[str, Any], user_id: str, now) -> Optional[Dict[str, Any]]:
    """None when the user is already seated."""
    if not can_join(game, user_id):
        raise Conflict("cannot_join_game", "Game is full or no longer open", status=game.get("status"))
    if user_id in game["players"]:
        return None

    seat = len(game["players"])
    return {
        "players": game["players"] + [user_id],
        "colors": {**game.get("colors", {}), user_id: player_color(game["type"], seat)},
        "updatedAt": now,
    }


def start_updates(game: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    if user_id not in game["players"]:
        raise PermissionDenied("not_a_player", "Only players can start the game")
    if game["status"] != "waiting":
        raise Conflict("game_already_started", "Game has already started", status=game["status"])
    if len(game["players"]) < game["minPlayers"]:
        raise Conflict(
            "not_enough_players",
            f"At least {game['minPlayers']} players are needed",
            players=len(game["players"]),
        )

    return {
        "status": "in_progress",
        "state": get_rules(game["type"]).initial_state(len(game["players"])),
        "turn": 0,
        "startedAt": now,
        "updatedAt": now,
    }


def next_turn(game: Dict[str, Any], seat: int) -> int:
    players = game["players"]
    resigned = set(game.get("resigned", []))
    for step in range(1, len(players) + 1):
        candidate = (seat + step) % len(players)
        if players[candidate] not in resigned:
            return candidate
    return seat


def _finish(winner_id: Optional[str], reason: str, now) -> Dict[str, Any]:
    return {
        "status": "finished",
        "result": {"winner": winner_id, "reason": reason},
        "finishedAt": now,
        "updatedAt": now,
    }


def move_updates(
    game: Dict[str, Any],
    user_id: str,
    move: Any,
    now,
    dice: Callable[[], int] = roll_dice,
) -> Dict[str, Any]:
    if game["status"] != "in_progress":
        raise Conflict("game_not_in_progress", "Game is not in progress", status=game["status"])
    if user_id not in game["players"]:
        raise PermissionDenied("not_a_player", "You are not a player in this game")

    seat = game["players"].index(user_id)
    if seat != game["turn"]:
        raise Conflict("not_your_turn", "It is not your turn", turn=game["players"][game["turn"]])

    if isinstance(move, dict) and game["type"] in DICE_GAMES:
        wants_roll = game["type"] == SNAKE or move.get("action") == "roll"
        if wants_roll and move.get("diceRoll") is None:
            move = {**move, "diceRoll": dice()}

    validate_move_format(game["type"], move)
    outcome = get_rules(game["type"]).play(game["state"], move, seat)

    history = list(game.get("moveHistory", []))
    history.append({
        "moveNumber": len(history) + 1,
        "playerId": user_id,
        "move": move,
        "notation": outcome.notation,
        "timestamp": now,
    })

    updates = {
        "state": outcome.state,
        "moveHistory": history,
        "turn": seat if outcome.keep_turn else next_turn(game, seat),
        "updatedAt": now,
    }
    if outcome.is_over:
        winner_id = game["players"][outcome.winner] if outcome.winner is not None else None
        updates.update(_finish(winner_id, "win" if winner_id else "draw", now))
    return updates


def resign_updates(game: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    if game["status"] != "in_progress":
        raise Conflict("game_not_in_progress", "Game is not in progress", status=game["status"])
    if user_id not in game["players"]:
        raise PermissionDenied("not_a_player", "You are not a player in this game")
    if user_id in game.get("resigned", []):
        raise Conflict("already_resigned", "You have already resigned")

    resigned = game.get("resigned", []) + [user_id]
    remaining = [p for p in game["players"] if p not in resigned]
    updates = {"resigned": resigned, "updatedAt": now}

    if len(remaining) <= 1:
        updates.update(_finish(remaining[0] if remaining else None, "resignation", now))
    elif game["players"][game["turn"]] == user_id:
        updates["turn"] = next_turn({**game, "resigned": resigned}, game["turn"])
        if (game.get("state") or {}).get("pendingRoll") is not None:
            updates["state"] = {**game["state"], "pendingRoll": None}
    return updates


def player_stats(games: Iterable[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
    stats = {"totalGames": 0, "wins": 0, "losses": 0, "draws": 0, "byGameType": {}}

    for game in games:
        if game.get("status") != "finished" or user_id not in game.get("players", []):
            continue
        winner = (game.get("result") or {}).get("winner")
        stats["totalGames"] += 1
        if winner == user_id:
            stats["wins"] += 1
        elif winner is None:
            stats["draws"] += 1
        else:
            stats["losses"] += 1

        by_type = stats["byGameType"].setdefault(game["type"], {"played": 0, "won": 0})
        by_type["played"] += 1
        if winner == user_id:
            by_type["won"] += 1

    stats["winRate"] = round(stats["wins"] / stats["totalGames"] * 100) if stats["totalGames"] else 0
    return stats


def invite_message_payload(game: Dict[str, Any]) -> Dict[str, Any]:
    """Body for the ``game_invite`` chat message announcing a new room."""
    config = GAME_CONFIG[game["type"]]
    return {
        "type": "game_invite",
        "text": f"Let's play {config['displayName']}!",
        "gameInvite": {
            "gameId": game["id"],
            "gameType": game["type"],
            "status": game["status"],
            "maxPlayers": game["maxPlayers"],
        },
    }


def public_view(game: Dict[str, Any]) -> Dict[str, Any]:
    view = dict(game)
    view["currentPlayer"] = game["players"][game["turn"]] if game.get("status") == "in_progress" else None
    return view


def sort_recent(games: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(games, key=lambda g: sort_key_datetime(g.get("updatedAt")), reverse=True)
