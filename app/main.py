from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from app.config import settings
from app.db import Base, engine
from app.metrics import flush_metrics
from app.route_logging import EndpointNameRoute
from app.routers import attendance, lab

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    logging.getLogger(__name__).info('app_started env=%s database=%s', settings.app_env, engine.url.get_backend_name())
    yield
    flush_metrics()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute

app.include_router(lab.router)
app.include_router(attendance.router)


@app.get('/')
def health():
    return {'app': settings.app_name, 'status': 'ok'}


@app.get('/health')
def healthcheck():
    return {'status': 'ok'}
