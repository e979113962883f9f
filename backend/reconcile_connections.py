import asyncio
import logging
import os
import sys

# make the travelbunk package importable when run from backend/
sys.path.append(os.getcwd())

from travelbunk.db.database import AsyncSessionLocal, init_db
from travelbunk.repositories.user_repository import UserDirectory
from travelbunk.services.connection_service import ConnectionRequestManager
from travelbunk.services.notification_service import get_notification_sink

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

async def reconcile():
    await init_db()
    async with AsyncSessionLocal() as session:
        manager = ConnectionRequestManager(UserDirectory(session), get_notification_sink())
        report = await manager.reconcile()
    print(f"Scanned {report.users_scanned} users: "
          f"{report.connections_repaired} connection entries and "
          f"{report.requests_repaired} request records repaired.")

if __name__ == "__main__":
    asyncio.run(reconcile())
