"""API Gateway principal - Punto de entrada de la aplicación"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
import logging
from contextlib import asynccontextmanager

from app.core.config import settings
from shared.database import connection
from shared.database.connection import init_db, close_db
from shared.cache.redis_client import init_redis, close_redis
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    logger.info("Iniciando aplicación...")
    await init_db()
    await init_redis()
    logger.info("Aplicación iniciada")
    yield
    logger.info("Cerrando aplicación...")
    await close_db()
    await close_redis()
    logger.info("Aplicación cerrada")


app = FastAPI(
    title="Event Commerce API",
    description="Carrito, descuentos, inventario y checkout para eventos",
    version="1.0.0",
    lifespan=lifespan
)

# CORS antes de rate limiting
if settings.APP_ENV == "development":
    logger.info("Modo desarrollo: CORS configurado para permitir todos los orígenes")
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = settings.cors_origins
    allow_credentials = True
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=3600,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Routers de cada servicio
from services.event_catalog.routes.catalog import router as catalog_router
from services.purchase.routes.checkout import router as checkout_router
from services.promotions.routes.coupons import router as coupons_router, admin_router as coupons_admin_router
from services.promotions.routes.offers import router as offers_router, admin_router as offers_admin_router
from services.orders.routes.orders import router as orders_router, admin_router as orders_admin_router

app.include_router(catalog_router, prefix="/api/v1/events", tags=["catalog"])
app.include_router(checkout_router, prefix="/api/v1/events", tags=["checkout"])
app.include_router(coupons_router, prefix="/api/v1", tags=["promotions"])
app.include_router(offers_router, prefix="/api/v1", tags=["promotions"])
app.include_router(orders_router, prefix="/api/v1", tags=["orders"])
app.include_router(coupons_admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(offers_admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(orders_admin_router, prefix="/api/v1/admin", tags=["admin"])


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "service": "event-commerce-api"}


@app.get("/ready")
async def ready():
    """Ready check endpoint - verifica conexiones"""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError
    from redis.exceptions import RedisError
    from shared.cache.redis_client import get_redis

    try:
        async with connection.async_session_maker() as session:
            await session.execute(text("SELECT 1"))

        redis = await get_redis()
        await redis.ping()
    except (SQLAlchemyError, RedisError, OSError, TypeError) as e:
        logger.error(f"Ready check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})

    return {"status": "ready", "database": "connected", "redis": "connected"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
