"""Create a user with roles in the configured database.

    python tools/create_user.py alice 's3cret' ADMIN EDITOR
"""
import asyncio
import sys

from app.core.config import settings
from app.core.identity import UserDirectory
from app.core.logging import configure_logging
from app.db.session import SessionLocal, engine, init_models


async def main(username: str, password: str, roles: list[str]) -> None:
    await init_models(engine)
    await UserDirectory(SessionLocal).create_user(username, password, roles)
    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)
    configure_logging(settings.log_level, json_output=False)
    asyncio.run(main(sys.argv[1], sys.argv[2], sys.argv[3:]))
