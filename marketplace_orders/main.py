from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from marketplace_orders.presentation.api import router
from marketplace_orders.infrastructure.database import create_tables

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    await create_tables()
    logger.info("Таблицы созданы")

    yield

    logger.info("Приложение останавливается...")


app = FastAPI(
    title="Marketplace Order Service",
    description="Заказы маркетплейса: оплата, склад, выполнение и отмена",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Marketplace Order Service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
