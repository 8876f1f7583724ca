import unittest
from datetime import datetime, timezone

import chess

from messenger.errors import Conflict, InvalidInput, PermissionDenied
from messenger.games import InvalidMove, get_rules, rooms
from messenger.games.config import LUDO_BASE, LUDO_HOME, player_color
from messenger.games.ludo import global_cell, target_position
from messenger.games.snake import advance
from messenger.games.validators import validate_move_format

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestTicTacToe(unittest.TestCase):
    def setUp(self):
        self.rules = get_rules("tictactoe")
        self.state = self.rules.initial_state(2)

    def play(self, seat, position):
        outcome = self.rules.play(self.state, {"position": position}, seat)
        self.state = outcome.state
        return outcome

    def test_row_wins(self):
        for seat, position in ((0, 0), (1, 3), (0, 1), (1, 4)):
            self.assertFalse(self.play(seat, position).is_over)
        outcome = self.play(0, 2)
        self.assertTrue(outcome.is_over)
        self.assertEqual(outcome.winner, 0)
        self.assertTrue(self.rules.is_over(self.state))
        self.assertEqual(self.rules.winner(self.state), 0)

    def test_full_board_is_draw(self):
        for index, position in enumerate((0, 1, 2, 4, 3, 5, 7, 6, 8)):
            outcome = self.play(index % 2, position)
        self.assertTrue(outcome.is_over)
        self.assertIsNone(outcome.winner)

    def test_taken_cell(self):
        self.play(0, 4)
        with self.assertRaises(InvalidMove):
            self.play(1, 4)
        self.assertFalse(self.rules.validate_move(self.state, {"position": 4}, 1))


class TestSnakeAndLadders(unittest.TestCase):
    def test_ladders_snakes_and_overshoot(self):
        self.assertEqual(advance(0, 2), (38, "ladder"))
        self.assertEqual(advance(10, 6), (6, "snake"))
        self.assertEqual(advance(97, 5), (97, None))
        self.assertEqual(advance(94, 6), (100, None))

    def test_reaching_100_wins(self):
        rules = get_rules("snake")
        state = rules.initial_state(3)
        state["positions"][1] = 96
        outcome = rules.play(state, {"diceRoll": 4}, 1)
        self.assertTrue(outcome.is_over)
        self.assertEqual(outcome.winner, 1)
        self.assertEqual(outcome.state["lastRoll"], 4)


class TestLudo(unittest.TestCase):
    def setUp(self):
        self.rules = get_rules("ludo")
        self.state = self.rules.initial_state(2)

    def test_track_helpers(self):
        self.assertEqual(target_position(LUDO_BASE, 6), 0)
        self.assertEqual(target_position(LUDO_BASE, 5), -2)
        self.assertEqual(target_position(55, 3), -2)
        self.assertEqual(target_position(54, 3), LUDO_HOME)
        self.assertEqual(global_cell(1, 0), 13)
        self.assertEqual(global_cell(3, 45), 32)
        self.assertEqual(global_cell(0, 52), -1)

    def test_roll_without_moves_passes(self):
        outcome = self.rules.play(self.state, {"action": "roll", "diceRoll": 3}, 0)
        self.assertFalse(outcome.keep_turn)
        self.assertIsNone(outcome.state["pendingRoll"])

    def test_six_leaves_base_and_keeps_turn(self):
        rolled = self.rules.play(self.state, {"action": "roll", "diceRoll": 6}, 0)
        self.assertTrue(rolled.keep_turn)
        moved = self.rules.play(rolled.state, {"action": "move", "tokenIndex": 2}, 0)
        self.assertEqual(moved.state["positions"][0][2], 0)
        self.assertTrue(moved.keep_turn)
        self.assertIsNone(moved.state["pendingRoll"])

    def test_move_requires_roll(self):
        with self.assertRaises(InvalidMove):
            self.rules.play(self.state, {"action": "move", "tokenIndex": 0}, 0)

    def test_capture_sends_token_home(self):
        # Seat 1 at relative 2 sits on global cell 15; seat 0 lands there from 12.
        self.state["positions"][0][0] = 12
        self.state["positions"][1][3] = 2
        self.state["pendingRoll"] = 3
        outcome = self.rules.play(self.state, {"action": "move", "tokenIndex": 0}, 0)
        self.assertEqual(outcome.state["positions"][1][3], LUDO_BASE)
        self.assertTrue(outcome.keep_turn)
        self.assertIn("capture", outcome.notation)

    def test_safe_cells_protect(self):
        self.state["positions"][0][0] = 5
        self.state["positions"][1][0] = 47
        self.state["pendingRoll"] = 3
        outcome = self.rules.play(self.state, {"action": "move", "tokenIndex": 0}, 0)
        self.assertEqual(outcome.state["positions"][1][0], 47)
        self.assertFalse(outcome.keep_turn)

    def test_last_token_home_wins(self):
        self.state["positions"][0] = [LUDO_HOME, LUDO_HOME, LUDO_HOME, 55]
        self.state["pendingRoll"] = 2
        outcome = self.rules.play(self.state, {"action": "move", "tokenIndex": 3}, 0)
        self.assertTrue(outcome.is_over)
        self.assertEqual(outcome.winner, 0)
        self.assertFalse(outcome.keep_turn)


class TestChess(unittest.TestCase):
    def setUp(self):
        self.rules = get_rules("chess")
        self.state = self.rules.initial_state(2)

    def play(self, seat, from_square, to_square, **extra):
        outcome = self.rules.play(self.state, {"from": from_square, "to": to_square, **extra}, seat)
        self.state = outcome.state
        return outcome

    def test_opening_move(self):
        outcome = self.play(0, "e2", "e4")
        self.assertEqual(outcome.notation, "e4")
        self.assertEqual(chess.Board(self.state["fen"]).turn, chess.BLACK)

    def test_wrong_color_and_illegal_move(self):
        with self.assertRaises(InvalidMove):
            self.play(1, "e7", "e5")
        with self.assertRaises(InvalidMove):
            self.play(0, "e2", "e5")

    def test_fools_mate(self):
        self.play(0, "f2", "f3")
        self.play(1, "e7", "e5")
        self.play(0, "g2", "g4")
        outcome = self.play(1, "d8", "h4")
        self.assertTrue(outcome.is_over)
        self.assertEqual(outcome.winner, 1)
        self.assertEqual(outcome.notation, "Qh4#")
        self.assertEqual(self.state["termination"], "checkmate")

    def test_promotion_defaults_to_queen(self):
        self.state = {"fen": "8/P6k/8/8/8/8/8/K7 w - - 0 1", "lastMove": None}
        outcome = self.play(0, "a7", "a8")
        self.assertEqual(outcome.notation, "a8=Q")
        outcome = self.rules.play(
            {"fen": "8/P6k/8/8/8/8/8/K7 w - - 0 1", "lastMove": None},
            {"from": "a7", "to": "a8", "promotion": "n"},
            0,
        )
        self.assertEqual(outcome.notation, "a8=N")


class TestMoveFormat(unittest.TestCase):
    def test_shapes(self):
        validate_move_format("chess", {"from": "e2", "to": "e4"})
        with self.assertRaises(InvalidMove):
            validate_move_format("chess", {"from": "z9", "to": "e4"})
        with self.assertRaises(InvalidMove):
            validate_move_format("tictactoe", {"position": 9})
        with self.assertRaises(InvalidMove):
            validate_move_format("snake", {"diceRoll": 7})
        with self.assertRaises(InvalidMove):
            validate_move_format("ludo", {"action": "jump"})
        with self.assertRaises(InvalidMove):
            validate_move_format("ludo", "e4")

    def test_unknown_game(self):
        with self.assertRaises(InvalidMove) as ctx:
            get_rules("checkers")
        self.assertEqual(ctx.exception.code, "invalid_move")


class TestRooms(unittest.TestCase):
    def setUp(self):
        self.game = rooms.create_game("chat_1", "alice", "tictactoe", NOW)

    def apply(self, updates):
        if updates:
            self.game.update(updates)

    def start_two_player(self):
        self.apply(rooms.join_updates(self.game, "bob", NOW))
        self.apply(rooms.start_updates(self.game, "alice", NOW))

    def test_create(self):
        self.assertEqual(self.game["status"], "waiting")
        self.assertEqual(self.game["players"], ["alice"])
        self.assertEqual(self.game["colors"], {"alice": "X"})
        with self.assertRaises(InvalidInput):
            rooms.create_game("chat_1", "alice", "checkers", NOW)

    def test_join_and_capacity(self):
        self.apply(rooms.join_updates(self.game, "bob", NOW))
        self.assertEqual(self.game["colors"]["bob"], player_color("tictactoe", 1))
        self.assertIsNone(rooms.join_updates(self.game, "bob", NOW))
        with self.assertRaises(Conflict):
            rooms.join_updates(self.game, "carol", NOW)

    def test_start_needs_enough_players(self):
        with self.assertRaises(Conflict) as ctx:
            rooms.start_updates(self.game, "alice", NOW)
        self.assertEqual(ctx.exception.code, "not_enough_players")

    def test_turns_and_win(self):
        self.start_two_player()
        self.assertEqual(rooms.public_view(self.game)["currentPlayer"], "alice")
        with self.assertRaises(Conflict):
            rooms.move_updates(self.game, "bob", {"position": 0}, NOW)
        with self.assertRaises(PermissionDenied):
            rooms.move_updates(self.game, "carol", {"position": 0}, NOW)

        for user, position in (("alice", 0), ("bob", 3), ("alice", 1), ("bob", 4), ("alice", 2)):
            self.apply(rooms.move_updates(self.game, user, {"position": position}, NOW))

        self.assertEqual(self.game["status"], "finished")
        self.assertEqual(self.game["result"], {"winner": "alice", "reason": "win"})
        self.assertEqual(len(self.game["moveHistory"]), 5)
        self.assertEqual(self.game["moveHistory"][-1]["notation"], "X2")
        with self.assertRaises(Conflict):
            rooms.move_updates(self.game, "bob", {"position": 8}, NOW)

    def test_server_rolls_dice(self):
        game = rooms.create_game(None, "alice", "snake", NOW)
        game.update(rooms.join_updates(game, "bob", NOW))
        game.update(rooms.start_updates(game, "bob", NOW))
        game.update(rooms.move_updates(game, "alice", {}, NOW, dice=lambda: 2))
        self.assertEqual(game["state"]["positions"], [38, 0])
        self.assertEqual(game["moveHistory"][0]["move"], {"diceRoll": 2})
        self.assertEqual(game["turn"], 1)

    def test_ludo_turn_stays_between_roll_and_move(self):
        game = rooms.create_game(None, "alice", "ludo", NOW)
        game.update(rooms.join_updates(game, "bob", NOW))
        game.update(rooms.start_updates(game, "alice", NOW))
        game.update(rooms.move_updates(game, "alice", {"action": "roll"}, NOW, dice=lambda: 6))
        self.assertEqual(game["turn"], 0)
        game.update(rooms.move_updates(game, "alice", {"action": "move", "tokenIndex": 0}, NOW))
        self.assertEqual(game["turn"], 0)
        game.update(rooms.move_updates(game, "alice", {"action": "roll"}, NOW, dice=lambda: 1))
        game.update(rooms.move_updates(game, "alice", {"action": "move", "tokenIndex": 0}, NOW))
        self.assertEqual(game["turn"], 1)

    def test_resignation(self):
        game = rooms.create_game(None, "alice", "ludo", NOW)
        for user in ("bob", "carol"):
            game.update(rooms.join_updates(game, user, NOW))
        game.update(rooms.start_updates(game, "alice", NOW))

        game.update(rooms.resign_updates(game, "alice", NOW))
        self.assertEqual(game["turn"], 1)
        self.assertEqual(game["status"], "in_progress")
        with self.assertRaises(Conflict):
            rooms.resign_updates(game, "alice", NOW)

        game.update(rooms.resign_updates(game, "carol", NOW))
        self.assertEqual(game["result"], {"winner": "bob", "reason": "resignation"})

    def test_resigned_players_are_skipped(self):
        game = rooms.create_game(None, "alice", "snake", NOW)
        for user in ("bob", "carol"):
            game.update(rooms.join_updates(game, user, NOW))
        game.update(rooms.start_updates(game, "alice", NOW))
        game.update(rooms.resign_updates(game, "bob", NOW))
        game.update(rooms.move_updates(game, "alice", {"diceRoll": 1}, NOW))
        self.assertEqual(game["turn"], 2)

    def test_stats(self):
        finished = [
            {"type": "chess", "status": "finished", "players": ["alice", "bob"], "result": {"winner": "alice"}},
            {"type": "chess", "status": "finished", "players": ["alice", "bob"], "result": {"winner": "bob"}},
            {"type": "tictactoe", "status": "finished", "players": ["alice", "bob"], "result": {"winner": None}},
            {"type": "ludo", "status": "in_progress", "players": ["alice", "bob"], "result": None},
        ]
        stats = rooms.player_stats(finished, "alice")
        self.assertEqual((stats["totalGames"], stats["wins"], stats["losses"], stats["draws"]), (3, 1, 1, 1))
        self.assertEqual(stats["byGameType"]["chess"], {"played": 2, "won": 1})
        self.assertEqual(stats["winRate"], 33)
        self.assertEqual(rooms.player_stats([], "alice")["winRate"], 0)

    def test_invite_payload(self):
        payload = rooms.invite_message_payload(self.game)
        self.assertEqual(payload["type"], "game_invite")
        self.assertEqual(payload["gameInvite"]["gameId"], self.game["id"])


if __name__ == "__main__":
    unittest.main()
