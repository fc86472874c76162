from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

# Must come after load_dotenv so env vars are available
from chain_agent.api import admin, agent, health           # noqa: E402
from chain_agent.core.config import get_settings           # noqa: E402
from chain_agent.core.logging import configure_logging, get_logger  # noqa: E402
from chain_agent.memory.thread_store import get_thread_store  # noqa: E402

configure_logging()
log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await get_thread_store().initialize()
    log.info("startup", version="0.1.0", environment=get_settings().environment)
    yield
    log.info("shutdown")


app = FastAPI(
    title="Chain Agent",
    description="LangGraph blockchain chat agent with persistent threads",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(agent.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chain_agent.main:app", host="0.0.0.0", port=8000, reload=True)
