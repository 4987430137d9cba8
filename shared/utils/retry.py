"""Utilidades para retry con backoff exponencial"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Any, Optional, Type, Tuple

logger = logging.getLogger(__name__)


async def retry_with_backoff(
    func: Callable,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception], Awaitable[None]]] = None,
) -> Any:
    """
    Ejecutar función con retry y backoff exponencial

    Args:
        func: Función a ejecutar (async o sync)
        max_retries: Número máximo de reintentos (0 = un solo intento)
        initial_delay: Delay inicial en segundos
        max_delay: Delay máximo en segundos
        exponential_base: Base para cálculo exponencial
        exceptions: Excepciones que deben trigger retry
        on_retry: Coroutine llamada con la excepción antes de cada reintento
            (p.ej. rollback de la sesión)

    Returns:
        Resultado de la función
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            if inspect.iscoroutinefunction(func):
                return await func()
            return func()
        except exceptions as e:
            if attempt == max_retries:
                raise
            logger.warning(
                f"Retry {attempt + 1}/{max_retries} after {type(e).__name__}: {e}. "
                f"Waiting {delay:.2f}s"
            )
            if on_retry is not None:
                await on_retry(e)
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)

    raise RuntimeError("Max retries exceeded")
