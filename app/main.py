"""
SubTrack - FastAPI Server
Main application entry point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.api import auth_router, users_router, subscriptions_router, email_router, admin_router
from app.services.agent_service import LangGraphAgentService
from app.services.email_import import ImportOrchestrator
from app.services.gmail_oauth import gmail_fetcher_factory
from app.services.seed_data import seed_default_templates
from app.services.subscription_job import SubscriptionUpdateJob

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle events"""
    # Startup
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    init_db()
    if settings.SEED_DEFAULT_TEMPLATES:
        seed_default_templates()

    agent_service = LangGraphAgentService()
    orchestrator = ImportOrchestrator(
        session_factory=SessionLocal,
        fetcher_factory=gmail_fetcher_factory,
        agent=agent_service,
    )
    if settings.IMPORT_REAP_STUCK_ON_STARTUP:
        orchestrator.reap_stuck_runs()

    job = SubscriptionUpdateJob()
    if settings.SUBSCRIPTION_JOB_ENABLED:
        job.start()

    app.state.agent_service = agent_service
    app.state.import_orchestrator = orchestrator
    app.state.subscription_job = job
    yield
    # Shutdown
    logger.info("Shutting down...")
    await job.stop()
    orchestrator.shutdown(wait=False)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Subscription tracker API with Gmail-based subscription detection",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(settings.CORS_ORIGINS + [settings.FRONTEND_URL])),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix=settings.API_PREFIX)
app.include_router(users_router, prefix=settings.API_PREFIX)
app.include_router(subscriptions_router, prefix=settings.API_PREFIX)
app.include_router(email_router, prefix=settings.API_PREFIX)
app.include_router(admin_router, prefix=settings.API_PREFIX)


@app.get("/")
def root():
    """Health check endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.DEBUG
    )
