# db/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

import aiomysql

from domain.errors import ConcurrencyConflictError


@asynccontextmanager
async def get_cursor(
    pool: aiomysql.Pool, *, dict_rows: bool = True
) -> AsyncIterator[aiomysql.Cursor]:
    """
    Cursor for a single autocommitted statement (DictCursor by default).
    """
    cursor_cls = aiomysql.DictCursor if dict_rows else aiomysql.Cursor
    async with pool.acquire() as conn:
        async with conn.cursor(cursor_cls) as cur:
            yield cur


@asynccontextmanager
async def transaction(
    pool: aiomysql.Pool, *, dict_rows: bool = True, read_only: bool = False
) -> AsyncIterator[Tuple[aiomysql.Connection, aiomysql.Cursor]]:
    """
    Runs statements inside one transaction.
    - Commits on success
    - Rolls back on any exception, so a failed bracket mutation leaves no
      partial rows
    - read_only opens a consistent snapshot: every SELECT inside sees the
      same committed state, whatever commits meanwhile

    Usage:
        async with transaction(pool) as (conn, cur):
            await cur.execute(...)
    """
    cursor_cls = aiomysql.DictCursor if dict_rows else aiomysql.Cursor

    async with pool.acquire() as conn:
        async with conn.cursor(cursor_cls) as cur:
            if read_only:
                await cur.execute("START TRANSACTION WITH CONSISTENT SNAPSHOT, READ ONLY;")
            else:
                await conn.begin()
            try:
                yield conn, cur
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise


@asynccontextmanager
async def versioned_write(
    pool: aiomysql.Pool,
    *,
    tournament_id: str,
    expected_version: int,
    stage: Optional[str] = None,
) -> AsyncIterator[Tuple[aiomysql.Cursor, int]]:
    """
    Transaction that first moves the tournament from expected_version to
    expected_version + 1 (and to `stage`, when given).

    Yields (cursor, new_version). If the row is missing or another writer
    already moved the version, ConcurrencyConflictError is raised before
    the body runs and nothing is written.
    """
    async with transaction(pool) as (_conn, cur):
        await cur.execute(
            """
            UPDATE tournament
            SET version=version+1,
                current_stage=COALESCE(%s, current_stage),
                updated_at=NOW(6)
            WHERE tournament_id=%s AND version=%s;
            """,
            (stage, tournament_id, expected_version),
        )
        if cur.rowcount != 1:
            raise ConcurrencyConflictError(
                f"Tournament {tournament_id} changed since version {expected_version}."
            )
        yield cur, expected_version + 1
