"""Rutas de checkout"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Optional
from uuid import UUID
import logging

from shared.database.session import get_db
from shared.auth.dependencies import ensure_company_access, get_current_user, get_optional_user
from shared.utils.exceptions import DomainError, InvalidCouponError, to_http_exception
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.orders.models.order import OrderResponse
from services.orders.services.order_service import serialize_order
from services.purchase.models.checkout import AccountPrefillResponse, CheckoutRequest
from services.purchase.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{event_id}/checkout", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["checkout"])
async def checkout(
    request: Request,  # Necesario para rate limiter
    event_id: UUID,
    checkout_request: CheckoutRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[Dict] = Depends(get_optional_user),
):
    """
    Convertir el carrito en una orden.

    201 con la orden creada; 200 si el idempotency_key ya tenía orden.
    Errores: 400 carrito vacío o cupón inválido, 409 sin inventario
    (con todas las líneas que fallaron), 422 datos de checkout, 503 conflicto
    de persistencia.
    """
    if current_user and current_user.get("role") != "admin" and current_user.get("company_id"):
        if str(current_user["company_id"]) != str(checkout_request.company_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No puedes comprar a nombre de otra empresa",
            )

    try:
        order, created = await CheckoutService.checkout(db, event_id, checkout_request)
    except InvalidCouponError as e:
        raise to_http_exception(e, status_code=status.HTTP_400_BAD_REQUEST)
    except DomainError as e:
        logger.info(f"Checkout rejected for event {event_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception en checkout: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": "Error procesando la compra"},
        )

    if not created:
        response.status_code = status.HTTP_200_OK
    return OrderResponse(**serialize_order(order))


@router.get("/{event_id}/checkout/account", response_model=AccountPrefillResponse)
@limiter.limit(RATE_LIMITS["public"])
async def get_account_prefill(
    request: Request,
    event_id: UUID,
    company_id: UUID = Query(..., description="Empresa compradora"),
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user),
):
    """Datos de facturación pre-llenados desde el perfil de la empresa (editables)"""
    ensure_company_access(current_user, company_id, detail="No tienes acceso a los datos de esta empresa")
    try:
        account = await CheckoutService.get_account_prefill(db, company_id)
    except DomainError as e:
        raise to_http_exception(e)
    return AccountPrefillResponse(company_id=str(company_id), **account.to_dict())
