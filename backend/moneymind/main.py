import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .budget import router as budget_router
from .checkin import router as checkin_router
from .config import settings
from .database import close_db_pool, init_db_pool
from .goals import router as goals_router
from .goals_chat import router as goals_chat_router
from .money_reset import router as money_reset_router
from .playbook import router as playbook_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    await init_db_pool()
    logger.info("%s started", settings.app_name)
    yield
    await close_db_pool()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)
# Chat routes register first so "/goals/chat" is never read as a goal id.
app.include_router(goals_chat_router)
app.include_router(goals_router)
app.include_router(budget_router)
app.include_router(checkin_router)
app.include_router(playbook_router)
app.include_router(money_reset_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
