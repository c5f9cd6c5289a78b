import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from costagolf.api import bookings, checkout, health, jobs, orders, slots, webhooks
from costagolf.config import settings
from costagolf.models.database import init_db
from costagolf.services.container import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await init_db()

    if not settings.scheduler_api_key and not settings.scheduler_service_account:
        logger.warning(
            "Neither SCHEDULER_API_KEY nor SCHEDULER_SERVICE_ACCOUNT is configured. "
            "Only OIDC tokens from any Google service account can call /jobs/sweep."
        )

    services = build_services(settings)
    app.state.services = services
    services.start()

    yield

    await services.shutdown()


app = FastAPI(
    title="Costa Golf",
    description="Tee time booking API for Costa del Sol golf courses",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(slots.router)
app.include_router(orders.router)
app.include_router(checkout.router)
app.include_router(bookings.router)
app.include_router(webhooks.router)
app.include_router(jobs.router)
