from __future__ import annotations

import logging
from typing import List

from domain.models import UserStats
from domain.repositories import StatsRepository
from domain.stats import StatsWindow
from infrastructure.db.postgres_database import PostgresDatabase


logger = logging.getLogger(__name__)

_AGGREGATE_COLUMNS = """
    t.username,
    COALESCE(SUM(CASE WHEN t.type = 'in' THEN t.amount ELSE 0 END), 0) AS total_in,
    COALESCE(SUM(CASE WHEN t.type = 'out' THEN t.amount ELSE 0 END), 0) AS total_out,
    COUNT(DISTINCT t.game_id) AS games_count
"""


class PostgresStatsRepository(StatsRepository):
    """Postgres-backed implementation of `StatsRepository`."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    @staticmethod
    def _to_domain(row) -> UserStats:
        return UserStats(
            username=row[0],
            total_in=int(row[1]),
            total_out=int(row[2]),
            games_count=int(row[3]),
        )

    def query_stats(self, window: StatsWindow) -> List[UserStats]:
        clauses = []
        params = []
        if window.start is not None:
            clauses.append("g.game_date >= %s")
            params.append(window.start)
        if window.end is not None:
            clauses.append("g.game_date < %s")
            params.append(window.end)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self._db.fetchall(
            f"""
            SELECT {_AGGREGATE_COLUMNS}
            FROM transactions t
            JOIN games g ON g.id = t.game_id
            {where}
            GROUP BY t.username
            """,
            params,
        )
        return [self._to_domain(row) for row in rows]

    def recompute_all(self) -> int:
        with self._db.transaction():
            self._db.execute("DELETE FROM user_stats")
            written = self._db.execute(
                f"""
                INSERT INTO user_stats (username, total_in, total_out, games_count)
                SELECT {_AGGREGATE_COLUMNS}
                FROM transactions t
                GROUP BY t.username
                """
            )
        logger.info("Recomputed user_stats: %s rows", written)
        return written

    def get_snapshot(self) -> List[UserStats]:
        rows = self._db.fetchall(
            "SELECT username, total_in, total_out, games_count FROM user_stats"
        )
        return [self._to_domain(row) for row in rows]
