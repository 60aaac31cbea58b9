from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from domain.repositories import LedgerRepository, StatsRepository
from infrastructure.db.ledger_repository_sqlite import SqliteLedgerRepository
from infrastructure.db.sqlite_database import SqliteDatabase
from infrastructure.db.stats_repository_sqlite import SqliteStatsRepository

if TYPE_CHECKING:
    from infrastructure.db.postgres_database import PostgresDatabase


_POSTGRES_SCHEMES = ("postgres://", "postgresql://")


@dataclass
class Storage:
    """An open database handle together with the repositories using it."""

    database: Union[SqliteDatabase, PostgresDatabase]
    ledger_repo: LedgerRepository
    stats_repo: StatsRepository

    def close(self) -> None:
        self.database.close()


def open_storage(database_url: Optional[str], db_path: str = "stats.db") -> Storage:
    """
    Open the configured database and build the repositories on top of it.

    A `postgres://` / `postgresql://` URL selects PostgreSQL; otherwise the
    SQLite file at `db_path` is used.
    """

    if database_url and database_url.startswith(_POSTGRES_SCHEMES):
        # Imported lazily so SQLite deployments do not need the driver loaded.
        from infrastructure.db.ledger_repository_postgres import PostgresLedgerRepository
        from infrastructure.db.postgres_database import PostgresDatabase
        from infrastructure.db.stats_repository_postgres import PostgresStatsRepository

        database = PostgresDatabase(database_url).open()
        return Storage(
            database=database,
            ledger_repo=PostgresLedgerRepository(database),
            stats_repo=PostgresStatsRepository(database),
        )

    database = SqliteDatabase(db_path).open()
    return Storage(
        database=database,
        ledger_repo=SqliteLedgerRepository(database),
        stats_repo=SqliteStatsRepository(database),
    )
