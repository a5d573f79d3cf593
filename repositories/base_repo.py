# repositories/base_repo.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence, TypeVar

import aiomysql

from db.pool import DbPool
from db.tx import get_cursor, transaction, versioned_write
from domain.errors import StoreError

T = TypeVar("T")


@asynccontextmanager
async def store_errors(action: str) -> AsyncIterator[None]:
    """
    Re-raise driver failures as StoreError; bracket errors pass through.
    """
    try:
        yield
    except aiomysql.Error as e:
        raise StoreError(f"{action} failed: {e}") from e


class BaseRepo:
    """
    Base repository with small helpers to keep concrete repos readable.
    Repos hold no bracket rules; they read rows and apply change sets.
    """

    def __init__(self, db: DbPool) -> None:
        self._db = db

    @property
    def pool(self) -> aiomysql.Pool:
        return self._db.pool

    async def fetch_one(self, sql: str, params: Sequence[Any] | None = None) -> Mapping[str, Any] | None:
        async with store_errors("read"):
            async with get_cursor(self.pool, dict_rows=True) as cur:
                await cur.execute(sql, params or ())
                return await cur.fetchone()

    async def fetch_all(self, sql: str, params: Sequence[Any] | None = None) -> list[Mapping[str, Any]]:
        async with store_errors("read"):
            async with get_cursor(self.pool, dict_rows=True) as cur:
                await cur.execute(sql, params or ())
                rows = await cur.fetchall()
                return list(rows or [])

    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> int:
        async with store_errors("write"):
            async with transaction(self.pool, dict_rows=False) as (_conn, cur):
                await cur.execute(sql, params or ())
                return cur.rowcount

    async def in_tx(
        self,
        fn: Callable[[aiomysql.Connection, aiomysql.Cursor], Awaitable[T]],
        *,
        read_only: bool = False,
    ) -> T:
        """
        Run a function inside a transaction.
        The function receives (conn, cur) with a DictCursor.
        """
        async with store_errors("transaction"):
            async with transaction(self.pool, dict_rows=True, read_only=read_only) as (conn, cur):
                return await fn(conn, cur)

    async def in_versioned_tx(
        self,
        fn: Callable[[aiomysql.Cursor], Awaitable[None]],
        *,
        tournament_id: str,
        expected_version: int,
        stage: str | None = None,
    ) -> int:
        """
        Run a function after the tournament version compare-and-set.
        Returns the new version; a conflict raises before fn is called.
        """
        async with store_errors("versioned write"):
            async with versioned_write(
                self.pool,
                tournament_id=tournament_id,
                expected_version=expected_version,
                stage=stage,
            ) as (cur, version):
                await fn(cur)
                return version
