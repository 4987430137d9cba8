"""
Rate limiting usando slowapi + Redis.
El storage se comparte entre instancias de la API vía RATE_LIMIT_STORAGE_URI.
"""
import hashlib
import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """
    Obtener IP real del cliente considerando proxies/load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # La primera IP es la del cliente
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_client_identifier(request: Request) -> str:
    """
    Identificador para rate limiting: IP + hash del token si viene autenticado.
    """
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token_hash = hashlib.sha256(auth_header.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


storage_uri = settings.rate_limit_storage_uri
limiter = Limiter(
    key_func=get_client_identifier,
    storage_uri=storage_uri,
    strategy="fixed-window",
    headers_enabled=False,  # compatibilidad con response_model de FastAPI
)
logger.info(f"Rate limiter inicializado: {storage_uri.split('@')[-1]}")


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Handler JSON para 429 con Retry-After"""
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"

    logger.warning(
        f"Rate limit exceeded - IP: {get_real_client_ip(request)}, "
        f"Path: {request.url.path}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Demasiadas solicitudes. Por favor espera antes de intentar nuevamente.",
            "retry_after_seconds": int(retry_after) if retry_after.isdigit() else 60,
        },
        headers={"Retry-After": str(retry_after)},
    )


# Límites por tipo de operación
RATE_LIMITS = {
    # Checkout: restrictivo, cada intento toca inventario
    "checkout": "10/minute",
    # Validación de cupones: evita enumeración de códigos
    "coupon": "20/minute",
    # Catálogo y consultas públicas
    "public": "60/minute",
    # Operaciones administrativas
    "admin": "120/minute",
}
