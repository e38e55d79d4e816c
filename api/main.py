"""
Order Service — FastAPI application.

Provides:
- REST CRUD for orders
- Order-created notifications pushed to the email queue after commit
- Health and queue depth endpoints

The database and the queue are opened in the lifespan and kept on
app.state; handlers reach them through small dependency functions.
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from typing import Optional
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config.settings import Settings, get_settings
from database.session import Database
from database.store import OrderStore
from job_queue.message_queue import MessageQueue, QueueError, create_message_queue
from job_queue.producer import NotificationProducer
from models.schemas import OrderCreateRequest, OrderUpdateRequest

logger = structlog.get_logger()

NOTIFICATION_STATUS_HEADER = "X-Notification-Status"

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Invalid bodies are rejected before anything is written, with the same {"error": ...} shape."""
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) or "body" for err in exc.errors()})
    logger.warning("request_rejected", path=request.url.path, fields=fields)
    return _error(400, f"Invalid fields: {', '.join(fields)}")


def get_orders(request: Request) -> OrderStore:
    return request.app.state.orders


def get_producer(request: Request) -> NotificationProducer:
    return request.app.state.producer


# ══════════════════════════════════════════════════════════════
#  HEALTH
# ══════════════════════════════════════════════════════════════

@router.get("/health")
async def health(request: Request):
    return {
        "status": "healthy",
        "service": request.app.state.settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ══════════════════════════════════════════════════════════════
#  ORDERS
# ══════════════════════════════════════════════════════════════

@router.get("/api/orders")
async def list_orders(orders: OrderStore = Depends(get_orders)):
    try:
        return [o.model_dump() for o in await orders.list_orders()]
    except SQLAlchemyError as e:
        logger.error("orders_fetch_failed", error=str(e))
        return _error(500, "Failed to fetch orders")


@router.get("/api/orders/{order_id}")
async def get_order(order_id: int, orders: OrderStore = Depends(get_orders)):
    try:
        order = await orders.get_order(order_id)
    except SQLAlchemyError as e:
        logger.error("order_fetch_failed", order_id=order_id, error=str(e))
        return _error(500, "Failed to fetch order")
    if not order:
        return _error(404, "Order not found")
    return order.model_dump()


@router.post("/api/orders", status_code=201)
async def create_order(
    req: OrderCreateRequest,
    orders: OrderStore = Depends(get_orders),
    producer: NotificationProducer = Depends(get_producer),
):
    """
    Create an order, then enqueue its notification.

    The notification is pushed only after the insert has committed. A failed
    push does not undo the order: the response is still 201 and only the
    X-Notification-Status header reports "failed".
    """
    if not req.is_complete():
        return _error(400, "All fields are required")

    try:
        order = await orders.create_order(
            user_id=req.user_id,
            product_id=req.product_id,
            quantity=req.quantity,
            total_amount=req.total_amount,
        )
    except SQLAlchemyError as e:
        logger.error("order_create_failed", error=str(e))
        return _error(500, "Failed to create order")

    result = await producer.notify_order_created(order)
    if result.ok:
        logger.info("order_created", order_id=order.id, notification=result.status)
    else:
        logger.warning("order_created_without_notification",
                       order_id=order.id,
                       error=str(result.error))

    return JSONResponse(
        status_code=201,
        content=jsonable_encoder(order.model_dump()),
        headers={NOTIFICATION_STATUS_HEADER: result.status},
    )


@router.put("/api/orders/{order_id}")
async def update_order(
    order_id: int,
    req: OrderUpdateRequest,
    orders: OrderStore = Depends(get_orders),
):
    try:
        order = await orders.update_order(
            order_id,
            status=req.status,
            quantity=req.quantity,
            total_amount=req.total_amount,
        )
    except SQLAlchemyError as e:
        logger.error("order_update_failed", order_id=order_id, error=str(e))
        return _error(500, "Failed to update order")
    if not order:
        return _error(404, "Order not found")
    logger.info("order_updated", order_id=order_id)
    return order.model_dump()


@router.delete("/api/orders/{order_id}")
async def delete_order(order_id: int, orders: OrderStore = Depends(get_orders)):
    try:
        deleted = await orders.delete_order(order_id)
    except SQLAlchemyError as e:
        logger.error("order_delete_failed", order_id=order_id, error=str(e))
        return _error(500, "Failed to delete order")
    if not deleted:
        return _error(404, "Order not found")
    logger.info("order_deleted", order_id=order_id)
    return {"message": "Order deleted successfully"}


# ══════════════════════════════════════════════════════════════
#  QUEUE
# ══════════════════════════════════════════════════════════════

@router.get("/api/queue/stats")
async def queue_stats(request: Request):
    queue: MessageQueue = request.app.state.queue
    name = request.app.state.settings.queue.name
    try:
        depth = await queue.length(name)
    except QueueError as e:
        logger.error("queue_stats_failed", queue=name, error=str(e))
        return _error(503, "Queue unavailable")
    return {"queue": name, "depth": depth}


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    queue: Optional[MessageQueue] = None,
) -> FastAPI:
    """Build the app. Injected handles are still opened and closed by the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        db = database or Database(cfg.database)
        mq = queue or create_message_queue({
            "backend": cfg.queue.backend,
            "redis_url": cfg.queue.redis_url,
        })

        await db.connect()
        await db.init_schema()
        await mq.connect()

        app.state.settings = cfg
        app.state.db = db
        app.state.queue = mq
        app.state.orders = OrderStore(db)
        app.state.producer = NotificationProducer(mq, queue_name=cfg.queue.name)

        logger.info("order_service_started",
                    queue=cfg.queue.name,
                    queue_backend=type(mq).__name__)
        yield

        await mq.close()
        await db.close()
        logger.info("order_service_stopped")

    app = FastAPI(
        title="Order Service",
        description="Orders with asynchronous email notifications",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)
    return app


app = create_app()
