from __future__ import annotations

import os, sys

HERE = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(HERE, "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import asyncio
from config import load_mysql_config
from db.pool import DbPool
from db.schema import ensure_schema

async def main() -> None:
    db = DbPool()
    await db.start(load_mysql_config())
    await db.ping()
    await ensure_schema(db.pool)
    await db.close()

    print("OK: DB pool ping succeeded, schema present.")

if __name__ == "__main__":
    asyncio.run(main())
