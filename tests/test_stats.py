import unittest
from datetime import date

from domain.errors import InvalidFilterError
from domain.models import UserScore, UserStats
from domain.stats import StatsFilter, StatsWindow, parse_stats_filter, rank_stats, to_scores


class ParseStatsFilterTests(unittest.TestCase):
    def test_absent_means_trailing_year(self):
        self.assertEqual(parse_stats_filter(None), StatsFilter())
        self.assertEqual(parse_stats_filter("  "), StatsFilter())

    def test_all(self):
        self.assertEqual(parse_stats_filter("ALL"), StatsFilter(all_time=True))

    def test_year(self):
        self.assertEqual(parse_stats_filter("2024"), StatsFilter(year=2024))

    def test_invalid_values(self):
        for raw in ("24", "20245", "last", "2024-01", "0000"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidFilterError):
                    parse_stats_filter(raw)


class StatsWindowTests(unittest.TestCase):
    today = date(2025, 6, 15)

    def test_trailing_window(self):
        window = StatsFilter().window(self.today)
        self.assertEqual(window, StatsWindow(start=date(2024, 6, 15)))
        self.assertTrue(window.contains(date(2024, 6, 15)))
        self.assertFalse(window.contains(date(2024, 6, 14)))
        self.assertFalse(window.contains(None))

    def test_year_window(self):
        window = StatsFilter(year=2024).window(self.today)
        self.assertTrue(window.contains(date(2024, 1, 1)))
        self.assertTrue(window.contains(date(2024, 12, 31)))
        self.assertFalse(window.contains(date(2025, 1, 1)))
        self.assertFalse(window.contains(date(2023, 12, 31)))

    def test_all_time_window_includes_undated_games(self):
        window = StatsFilter(all_time=True).window(self.today)
        self.assertFalse(window.is_bounded)
        self.assertTrue(window.contains(None))

    def test_last_possible_year(self):
        window = StatsFilter(year=9999).window(self.today)
        self.assertIsNone(window.end)
        self.assertTrue(window.contains(date(9999, 12, 31)))


class RankingTests(unittest.TestCase):
    def test_score_sign(self):
        self.assertEqual(UserStats("a", total_in=500, total_out=700).score, 200)

    def test_rank_by_score_then_username(self):
        rows = [
            UserStats("zed", 100, 100),
            UserStats("amy", 100, 100),
            UserStats("bob", 0, 50),
            UserStats("cat", 200, 0),
        ]
        self.assertEqual([r.username for r in rank_stats(rows)], ["bob", "amy", "zed", "cat"])

    def test_to_scores(self):
        rows = [UserStats("a", 500, 0), UserStats("b", 0, 1840)]
        self.assertEqual(to_scores(rows), [UserScore("b", 1840), UserScore("a", -500)])


if __name__ == "__main__":
    unittest.main()
