#!/usr/bin/env python3
"""Apply the SQL files in migrations/ in name order."""
import asyncio
import os
from pathlib import Path

import asyncpg

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"
TABLES = ("batch_jobs", "batch_job_history", "batch_queue_items")


async def main():
    conn = await asyncpg.connect(os.environ["DATABASE_URL"], statement_cache_size=0)
    try:
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            await conn.execute(path.read_text())
            print(f"Applied {path.name}")

        # Verify
        for table in TABLES:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM information_schema.columns WHERE table_name = $1",
                table,
            )
            print(f"{table}: {count} columns")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(main())
