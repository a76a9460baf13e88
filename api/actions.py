"""POST /api/actions: unified mutation endpoint."""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import request_id_of, success_response
from core.models import InvoiceCreate, PaymentMethod


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["payment"], services["payment_link"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}", None)
        result = method(body.data)
        return success_response(result, request_id_of(request)).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


def _require(data: dict, key: str):
    if data.get(key) in (None, ""):
        raise ValueError(f"'{key}' is required")
    return data[key]


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        invoice = self.service.create(InvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(_require(data, "id"))
        return {"deleted": True}


class PaymentHandler:
    ALLOWED_ACTIONS = {"record", "confirm_deposit", "request_link", "generate_link"}

    def __init__(self, payment_service, link_service):
        self.payment_service = payment_service
        self.link_service = link_service

    def _handle_record(self, data: dict):
        invoice = self.payment_service.record_payment(
            _require(data, "id"),
            _require(data, "amount"),
            PaymentMethod(_require(data, "method")),
        )
        return invoice.model_dump(mode="json")

    def _handle_confirm_deposit(self, data: dict):
        invoice = self.payment_service.confirm_deposit_received(
            _require(data, "id"),
            _require(data, "amount"),
            confirmed=data.get("confirmed") is True,
        )
        return invoice.model_dump(mode="json")

    def _handle_request_link(self, data: dict):
        link = self.link_service.request_link(_require(data, "id"), data.get("amount"))
        return link.model_dump(mode="json")

    def _handle_generate_link(self, data: dict):
        link = self.link_service.generate_link(_require(data, "id"), _require(data, "amount"))
        return link.model_dump(mode="json")
