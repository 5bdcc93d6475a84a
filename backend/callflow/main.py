import logging

from fastapi import FastAPI

from callflow.api import health, operator, voice
from callflow.core.config import settings
from callflow.core.logging import configure_logging
from callflow.services.context import ServiceContext

app = FastAPI(title=settings.app_name)

logger = logging.getLogger(__name__)

app.include_router(health.router)
app.include_router(voice.router)
app.include_router(operator.router)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging(settings.log_level)
    report_configuration()
    app.state.services = ServiceContext.from_settings(settings)


@app.on_event("shutdown")
def on_shutdown() -> None:
    services = getattr(app.state, "services", None)
    if services is not None:
        services.close()


def report_configuration() -> None:
    problems = settings.configuration_problems()
    for problem in problems:
        if settings.is_production:
            logger.error("Configuration problem: %s", problem)
        else:
            logger.warning("Configuration problem: %s", problem)
