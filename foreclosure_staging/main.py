from fastapi import FastAPI
from foreclosure_staging.api.routes import router as api_router
from foreclosure_staging.db import Base, engine
import foreclosure_staging.models  # noqa: F401 ensure models are imported so tables are known
from foreclosure_staging.settings import settings
from foreclosure_staging.utils import logger

# create FastAPI instance
app = FastAPI(title="Foreclosure staging admin")
app.include_router(api_router)

_scheduler = None


@app.on_event("startup")
def on_startup():
    global _scheduler
    Base.metadata.create_all(bind=engine)
    if settings.scheduler_enabled:
        from foreclosure_staging.scheduler import start_scheduler
        _scheduler = start_scheduler(settings)
    logger.info("Admin API ready")


@app.on_event("shutdown")
def on_shutdown():
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
