"""
Application entry point.

create_app() wires already-built collaborators and is what tests use.
build_app() reads .env and Vault, connects to Postgres and the gateway,
and is what uvicorn serves.
"""

import logging
import os

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request

from api.actions import create_actions_router
from api.base import request_id_of, success_response
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, StaffContextMiddleware
from api.receipt import create_receipt_router
from clients import LeanxClient, PostgresClient, get_database_url, get_gateway_config
from core.audit import AuditLogger
from core.config import PaymentConfig
from core.event_bus import EventBus
from core.handlers.payment_recorded_handler import handle_payment_recorded
from core.ledger_store import LedgerStore
from core.postgres_ledger_store import PostgresLedgerStore
from core.services.invoice_service import InvoiceService
from core.services.payment_link_service import PaymentLinkService
from core.services.payment_service import PaymentService
from core.services.receipt_service import ReceiptService

logger = logging.getLogger(__name__)


def build_services(
    config: PaymentConfig,
    ledger: LedgerStore,
    gateway: LeanxClient,
    audit: AuditLogger,
) -> dict:
    """Construct the services and subscribe event handlers."""
    event_bus = EventBus()
    event_bus.subscribe("PaymentRecorded", handle_payment_recorded(ledger))

    invoice = InvoiceService(ledger, audit, event_bus, config.business_timezone)
    payment = PaymentService(ledger, audit, event_bus)
    payment_link = PaymentLinkService(ledger, gateway, config, event_bus)
    receipt = ReceiptService(ledger, payment, payment_link, gateway, config)

    return {
        "ledger": ledger,
        "event_bus": event_bus,
        "invoice": invoice,
        "payment": payment,
        "payment_link": payment_link,
        "receipt": receipt,
    }


def create_app(
    config: PaymentConfig,
    ledger: LedgerStore,
    gateway: LeanxClient,
    audit: AuditLogger,
) -> FastAPI:
    """FastAPI app with middleware, error handlers and all routes."""
    services = build_services(config, ledger, gateway, audit)

    app = FastAPI(title="Workshop Payments")
    app.state.services = services

    # Last added runs first: request ids exist before the staff check can reject
    app.add_middleware(StaffContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_receipt_router(services))

    @app.get("/health")
    async def health(request: Request):
        return success_response({"status": "ok"}, request_id_of(request)).model_dump(mode="json")

    return app


def build_app() -> FastAPI:
    """Production app: secrets from Vault, invoices in Postgres."""
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = PaymentConfig(
        app_base_url=os.getenv("APP_BASE_URL", "http://localhost:8000"),
    )

    postgres = PostgresClient(get_database_url())
    ledger = PostgresLedgerStore(postgres)
    ledger.ensure_schema()
    audit = AuditLogger(postgres)
    audit.ensure_schema()

    gateway_secrets = get_gateway_config()
    gateway = LeanxClient(
        api_host=config.gateway_api_host,
        auth_token=gateway_secrets["auth_token"],
        collection_uuid=gateway_secrets["collection_uuid"],
        timeout_seconds=config.gateway_timeout_seconds,
    )

    logger.info(f"Serving receipts at {config.receipt_url}")
    return create_app(config, ledger, gateway, audit)


if __name__ == "__main__":
    uvicorn.run(build_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
