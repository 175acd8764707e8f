from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agenda.api import command, health, schedules, skills
from agenda.config import settings
from agenda.connectors.llm import LLMGateway
from agenda.core.dispatcher import ConversationDispatcher
from agenda.core.extraction import FieldExtractionEngine
from agenda.core.intent_matcher import IntentMatchEngine
from agenda.core.schedule_store import ScheduleStore
from agenda.notifications.notifier import LogNotifier
from agenda.notifications.scheduler import NotificationScheduler
from agenda.skills.loader import load_skill_dir
from agenda.skills.registry import SkillRegistry

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=0.2)


def build_state(app: FastAPI) -> None:
    registry = SkillRegistry()
    registry.load(lambda: load_skill_dir(settings.skills_dir))

    gateway = LLMGateway()
    store = ScheduleStore()
    app.state.registry = registry
    app.state.store = store
    app.state.dispatcher = ConversationDispatcher(
        registry,
        IntentMatchEngine(registry, gateway),
        FieldExtractionEngine(gateway),
        store,
    )
    app.state.scheduler = NotificationScheduler(LogNotifier())


@asynccontextmanager
async def lifespan(app: FastAPI):
    log = structlog.get_logger()
    build_state(app)
    log.info(
        "Starting agenda backend",
        environment=settings.environment,
        llm_provider=settings.llm_provider,
        skills=len(app.state.registry.get_all()),
    )
    await app.state.scheduler.start(app.state.store.list)
    yield
    await app.state.scheduler.stop()


app = FastAPI(
    title="Agenda Assistant",
    version="0.1.0",
    lifespan=lifespan,
)

origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()] if settings.allowed_origins else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(skills.router, prefix="/skills", tags=["skills"])
app.include_router(command.router, prefix="/command", tags=["command"])
app.include_router(schedules.router, prefix="/schedules", tags=["schedules"])
