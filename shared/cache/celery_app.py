"""
Configuración de Celery para tareas en segundo plano
(expiración de reservas PENDING y mantenimiento de inventario)
"""
from celery import Celery
from kombu import Queue, Exchange
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "eventcommerce",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "services.orders.tasks.order_tasks",
    ]
)

default_exchange = Exchange("default", type="direct")
priority_exchange = Exchange("priority", type="direct")

celery_app.conf.task_queues = (
    # Liberación de stock: no debe esperar detrás de tareas batch
    Queue("high_priority", priority_exchange, routing_key="high"),
    Queue("default", default_exchange, routing_key="default"),
    Queue("low_priority", default_exchange, routing_key="low"),
)

celery_app.conf.task_routes = {
    "expire_pending_orders": {"queue": "high_priority"},
    "reconcile_event_inventory": {"queue": "low_priority"},
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    timezone="UTC",
    enable_utc=True,

    task_track_started=True,

    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,

    worker_prefetch_multiplier=1,

    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,

    # ACK late: confirmar tarea solo cuando termina
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=3600,

    worker_max_tasks_per_child=1000,

    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",

    beat_schedule={
        "expire-pending-orders": {
            "task": "expire_pending_orders",
            "schedule": float(settings.ORDER_EXPIRY_INTERVAL_SECONDS),
        },
    },
)

logger.info(
    "Celery configurado - Broker: %s, expiry interval: %ss",
    settings.REDIS_URL.split("@")[-1],
    settings.ORDER_EXPIRY_INTERVAL_SECONDS,
)
