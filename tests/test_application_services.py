import copy
import unittest
from contextlib import contextmanager
from datetime import date

from application.services import (
    get_snapshot,
    import_game,
    query_scores,
    query_stats,
    recompute_all,
    submit_edit,
    submit_message,
)
from domain.errors import ConstraintError, InvalidFilterError
from domain.models import (
    MAX_AMOUNT,
    Direction,
    Game,
    Transaction,
    UserScore,
    UserStats,
    validate_transaction_fields,
)
from domain.messages import split_lines, strip_command_line
from domain.repositories import LedgerRepository, StatsRepository


REFERENCE_GAME = ["Вход:", "+500 | Тема", "+700 | User2", "Выход:", "+1840 | User3"]
TODAY = date(2025, 6, 15)


class InMemoryLedgerRepository(LedgerRepository):
    def __init__(self):
        self.games = {}
        self.transactions = []
        self._next_game_id = 1
        self._next_tx_id = 1
        self._depth = 0

    @contextmanager
    def unit_of_work(self):
        outermost = self._depth == 0
        saved = copy.deepcopy((self.games, self.transactions)) if outermost else None
        self._depth += 1
        try:
            yield
        except BaseException:
            if outermost:
                self.games, self.transactions = saved
            raise
        finally:
            self._depth -= 1

    def create_game(self, chat_id, origin_message_id, game_date=None):
        game_id = self._next_game_id
        self._next_game_id += 1
        self.games[game_id] = Game(game_id, chat_id, origin_message_id, game_date)
        return game_id

    def get_game(self, game_id):
        return self.games.get(game_id)

    def find_game_by_origin(self, chat_id, origin_message_id):
        for game in self.games.values():
            if game.chat_id == chat_id and game.origin_message_id == origin_message_id:
                return game
        return None

    def update_game_date(self, game_id, game_date):
        self.games[game_id].game_date = game_date

    def delete_game(self, game_id):
        self.delete_transactions_by_game(game_id)
        del self.games[game_id]

    def append_transaction(self, game_id, username, amount, direction):
        name, direction = validate_transaction_fields(username, amount, direction)
        if game_id not in self.games:
            raise ConstraintError(f"Game {game_id} does not exist")
        self.transactions.append(
            Transaction(self._next_tx_id, game_id, name, amount, direction)
        )
        self._next_tx_id += 1

    def get_transactions(self, game_id):
        return [t for t in self.transactions if t.game_id == game_id]

    def delete_transactions_by_game(self, game_id):
        before = len(self.transactions)
        self.transactions = [t for t in self.transactions if t.game_id != game_id]
        return before - len(self.transactions)


class InMemoryStatsRepository(StatsRepository):
    def __init__(self, ledger: InMemoryLedgerRepository):
        self.ledger = ledger
        self.snapshot = []

    def _aggregate(self, transactions):
        totals = {}
        for tx in transactions:
            row = totals.setdefault(tx.username, {"in": 0, "out": 0, "games": set()})
            row[tx.direction.value] += tx.amount
            row["games"].add(tx.game_id)
        return [
            UserStats(name, row["in"], row["out"], len(row["games"]))
            for name, row in totals.items()
        ]

    def query_stats(self, window):
        return self._aggregate(
            tx
            for tx in self.ledger.transactions
            if window.contains(self.ledger.games[tx.game_id].game_date)
        )

    def recompute_all(self):
        self.snapshot = self._aggregate(self.ledger.transactions)
        return len(self.snapshot)

    def get_snapshot(self):
        return list(self.snapshot)


class FlakyLedgerRepository(InMemoryLedgerRepository):
    """Rejects appends for one username to exercise per-line error handling."""

    def __init__(self, rejected_username):
        super().__init__()
        self.rejected_username = rejected_username

    def append_transaction(self, game_id, username, amount, direction):
        if username == self.rejected_username:
            raise ConstraintError("rejected")
        super().append_transaction(game_id, username, amount, direction)


def _entries(ledger, game_id):
    return sorted(
        (t.username, t.amount, t.direction) for t in ledger.get_transactions(game_id)
    )


class SubmitMessageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = InMemoryLedgerRepository()
        self.stats = InMemoryStatsRepository(self.ledger)

    def test_reference_game_scores(self):
        result = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        self.assertEqual(result.saved_count, 3)
        self.assertEqual(result.game_date, TODAY)
        self.assertEqual(
            query_scores("all", self.stats, today=TODAY),
            [UserScore("User3", 1840), UserScore("Тема", -500), UserScore("User2", -700)],
        )

    def test_message_without_entries_creates_nothing(self):
        result = submit_message(1, 10, ["hello", "+5 | before header"], self.ledger, today=TODAY)

        self.assertIsNone(result.game_id)
        self.assertEqual(result.saved_count, 0)
        self.assertEqual(self.ledger.games, {})

    def test_explicit_date_is_used(self):
        result = submit_message(1, 10, REFERENCE_GAME, self.ledger, game_date=date(2024, 2, 1), today=TODAY)
        self.assertEqual(self.ledger.get_game(result.game_id).game_date, date(2024, 2, 1))

    def test_redelivered_message_replaces_instead_of_duplicating(self):
        first = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)
        second = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        self.assertEqual(first.game_id, second.game_id)
        self.assertTrue(second.updated)
        self.assertEqual(len(self.ledger.games), 1)
        self.assertEqual(len(self.ledger.transactions), 3)

    def test_redelivered_message_keeps_stored_date(self):
        first = submit_message(1, 10, REFERENCE_GAME, self.ledger, game_date=date(2024, 5, 1), today=TODAY)

        second = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        self.assertEqual(second.game_date, date(2024, 5, 1))
        self.assertEqual(self.ledger.get_game(first.game_id).game_date, date(2024, 5, 1))

    def test_oversized_amount_is_skipped(self):
        lines = ["Вход:", "+500 | Тема", f"+{MAX_AMOUNT + 1} | Big", "Выход:", "+700 | Тема"]

        result = submit_message(1, 10, lines, self.ledger, today=TODAY)

        self.assertEqual(result.saved_count, 2)
        self.assertEqual(
            _entries(self.ledger, result.game_id),
            [("Тема", 500, Direction.IN), ("Тема", 700, Direction.OUT)],
        )

    def test_trailing_game_remark_is_not_a_command(self):
        text = "Вход:\n+500 | Тема\nВыход:\n+700 | Тема\ngood game all"

        result = submit_message(1, 10, strip_command_line(split_lines(text)), self.ledger, today=TODAY)

        self.assertEqual(result.saved_count, 2)

    def test_failed_line_does_not_abort_batch(self):
        ledger = FlakyLedgerRepository("User2")

        result = submit_message(1, 10, REFERENCE_GAME, ledger, today=TODAY)

        self.assertEqual(result.saved_count, 2)
        self.assertEqual(
            _entries(ledger, result.game_id),
            [("User3", 1840, Direction.OUT), ("Тема", 500, Direction.IN)],
        )

    def test_all_lines_failing_rolls_back_game(self):
        ledger = FlakyLedgerRepository("Solo")

        result = submit_message(1, 10, ["Вход:", "+5 | Solo"], ledger, today=TODAY)

        self.assertIsNone(result.game_id)
        self.assertIsNone(ledger.find_game_by_origin(1, 10))


class SubmitEditTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = InMemoryLedgerRepository()
        self.stats = InMemoryStatsRepository(self.ledger)

    def test_edit_replaces_transactions(self):
        created = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        edited = submit_edit(1, 10, ["Вход:", "+100 | Тема", "Выход:", "+100 | User2"], self.ledger, today=TODAY)

        self.assertEqual(edited.game_id, created.game_id)
        self.assertTrue(edited.updated)
        self.assertEqual(edited.saved_count, 2)
        self.assertEqual(
            _entries(self.ledger, created.game_id),
            [("User2", 100, Direction.OUT), ("Тема", 100, Direction.IN)],
        )

    def test_identical_edit_is_idempotent(self):
        created = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)
        before = _entries(self.ledger, created.game_id)
        stats_before = query_stats("all", self.stats, today=TODAY)

        submit_edit(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        self.assertEqual(_entries(self.ledger, created.game_id), before)
        self.assertEqual(query_stats("all", self.stats, today=TODAY), stats_before)

    def test_edit_keeps_prior_date_without_directive(self):
        created = submit_message(1, 10, REFERENCE_GAME, self.ledger, game_date=date(2024, 5, 1), today=TODAY)

        edited = submit_edit(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        self.assertEqual(edited.game_date, date(2024, 5, 1))
        self.assertEqual(self.ledger.get_game(created.game_id).game_date, date(2024, 5, 1))

    def test_edit_directive_overrides_date(self):
        created = submit_message(1, 10, REFERENCE_GAME, self.ledger, game_date=date(2024, 5, 1), today=TODAY)

        submit_edit(1, 10, REFERENCE_GAME, self.ledger, game_date=date(2024, 5, 2), today=TODAY)

        self.assertEqual(self.ledger.get_game(created.game_id).game_date, date(2024, 5, 2))

    def test_edit_adding_trailing_game_remark_keeps_entries(self):
        text = "Вход:\n+500 | Тема\nВыход:\n+700 | Тема"
        created = submit_message(1, 10, strip_command_line(split_lines(text)), self.ledger, today=TODAY)
        edited_text = text + "\ngood game all"

        edited = submit_edit(1, 10, strip_command_line(split_lines(edited_text)), self.ledger, today=TODAY)

        self.assertEqual(edited.saved_count, 2)
        self.assertEqual(
            _entries(self.ledger, created.game_id),
            [("Тема", 500, Direction.IN), ("Тема", 700, Direction.OUT)],
        )

    def test_edit_to_empty_text_keeps_existing_game_empty(self):
        created = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)

        edited = submit_edit(1, 10, ["nothing here"], self.ledger, today=TODAY)

        self.assertEqual(edited.game_id, created.game_id)
        self.assertEqual(edited.saved_count, 0)
        self.assertEqual(self.ledger.get_transactions(created.game_id), [])

    def test_edit_of_unknown_message_creates_game(self):
        edited = submit_edit(1, 11, REFERENCE_GAME, self.ledger, today=TODAY)

        self.assertIsNotNone(edited.game_id)
        self.assertFalse(edited.updated)
        self.assertEqual(edited.game_date, TODAY)
        self.assertEqual(self.ledger.find_game_by_origin(1, 11).id, edited.game_id)

    def test_edit_of_unknown_message_without_entries_leaves_no_game(self):
        edited = submit_edit(1, 11, ["Вход:", "just talking"], self.ledger, today=TODAY)

        self.assertIsNone(edited.game_id)
        self.assertIsNone(self.ledger.find_game_by_origin(1, 11))
        self.assertEqual(self.ledger.games, {})

    def test_failure_during_replay_keeps_previous_transactions(self):
        created = submit_message(1, 10, REFERENCE_GAME, self.ledger, today=TODAY)
        before = _entries(self.ledger, created.game_id)

        def broken_delete(game_id):
            self.ledger.transactions = []
            raise RuntimeError("disk on fire")

        self.ledger.delete_transactions_by_game = broken_delete
        with self.assertRaises(RuntimeError):
            submit_edit(1, 10, ["Вход:", "+1 | x"], self.ledger, today=TODAY)

        self.assertEqual(_entries(self.ledger, created.game_id), before)


class ImportGameTests(unittest.TestCase):
    def test_import_creates_game_without_origin(self):
        ledger = InMemoryLedgerRepository()

        result = import_game(5, REFERENCE_GAME, ledger, game_date=date(2023, 3, 3))

        game = ledger.get_game(result.game_id)
        self.assertIsNone(game.origin_message_id)
        self.assertEqual(game.game_date, date(2023, 3, 3))
        self.assertEqual(result.saved_count, 3)

    def test_import_without_entries_creates_nothing(self):
        ledger = InMemoryLedgerRepository()
        result = import_game(5, ["nothing"], ledger, today=TODAY)
        self.assertIsNone(result.game_id)
        self.assertEqual(ledger.games, {})


class StatsServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = InMemoryLedgerRepository()
        self.stats = InMemoryStatsRepository(self.ledger)
        submit_message(1, 1, ["Вход:", "+100 | old", "Выход:", "+300 | old"], self.ledger, game_date=date(2023, 7, 1))
        submit_message(1, 2, ["Вход:", "+500 | amy", "Выход:", "+700 | amy"], self.ledger, game_date=date(2024, 8, 1))
        submit_message(1, 3, ["Вход:", "+200 | amy", "+200 | bob", "Выход:", "+400 | bob"], self.ledger, game_date=date(2025, 3, 1))

    def test_default_filter_is_trailing_year(self):
        rows = query_stats(None, self.stats, today=TODAY)
        self.assertEqual(
            rows,
            [UserStats("bob", 200, 400, 1), UserStats("amy", 700, 700, 2)],
        )

    def test_year_filter(self):
        rows = query_stats("2024", self.stats, today=TODAY)
        self.assertEqual(rows, [UserStats("amy", 500, 700, 1)])

    def test_all_filter_matches_recompute(self):
        live = query_stats("all", self.stats, today=TODAY)

        self.assertEqual(recompute_all(self.stats), 3)
        snapshot = get_snapshot(self.stats)

        self.assertEqual(
            [(r.username, r.total_in, r.total_out) for r in live],
            [(r.username, r.total_in, r.total_out) for r in snapshot],
        )

    def test_ties_are_ordered_by_username(self):
        rows = query_stats("all", self.stats, today=TODAY)
        self.assertEqual([r.username for r in rows], ["bob", "old", "amy"])

    def test_invalid_filter_never_reaches_store(self):
        class ExplodingStats(InMemoryStatsRepository):
            def query_stats(self, window):
                raise AssertionError("store should not be queried")

        with self.assertRaises(InvalidFilterError):
            query_stats("yesterday", ExplodingStats(self.ledger), today=TODAY)
        with self.assertRaises(InvalidFilterError):
            query_scores("20", ExplodingStats(self.ledger), today=TODAY)


if __name__ == "__main__":
    unittest.main()
