"""Create the appointments table directly, without Alembic.

Intended for throwaway development databases; use ``scripts/migrate.py``
everywhere else.
"""

import asyncio

from sqlalchemy import text

from appointment_service.database import engine
from appointment_service.models import metadata


async def init_db(drop_existing: bool = False) -> None:
    async with engine.begin() as conn:
        # gen_random_uuid()
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        if drop_existing:
            await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Appointments schema created")


if __name__ == "__main__":
    import sys

    asyncio.run(init_db(drop_existing="--drop" in sys.argv[1:]))
