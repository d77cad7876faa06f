import asyncio

from easymove.common.logger import setup_logging
from easymove.config import settings
from easymove.core.users.repository import PostgresUserRepository
from easymove.core.users.seed import seed_demo_users
from easymove.core.users.service import UserService
from easymove.infra.database import close_db, get_db, init_db


async def main():
    # Seed demo users into PostgreSQL (memory backend seeds itself on startup)
    setup_logging()
    await init_db()
    print(f"Connected to DB {settings.database.DB_NAME}")

    users = await seed_demo_users(UserService(PostgresUserRepository(get_db())))
    for user in users:
        print(f"{user.role.value}: {user.email} X-User-Id={user.id}")

    await close_db()

if __name__ == "__main__":
    asyncio.run(main())
