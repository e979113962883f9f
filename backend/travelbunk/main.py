import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from travelbunk.core.config import ALLOWED_ORIGINS, LOG_LEVEL
from travelbunk.api.v1.routers import api_router
from travelbunk.sockets.notification_socket import router as notification_router
from travelbunk.db.database import init_db
from travelbunk.db.database_redis import RedisManager

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="TravelBunk API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def on_startup():
    """Creates the tables (and demo users when SEED_DEMO_USERS is set)."""
    await init_db()

app.include_router(api_router)
app.include_router(notification_router)

@app.get("/")
async def root():
    """Health check."""
    return {"message": "Welcome to TravelBunk API"}

@app.on_event("shutdown")
async def on_shutdown():
    await RedisManager.close()
