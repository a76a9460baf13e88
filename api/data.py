"""GET /api/data: staff read endpoint for invoices, summaries and income."""

from fastapi import APIRouter, Query, Request

from api.base import request_id_of, success_response


VALID_TYPES = {"invoices", "summary", "transactions"}
INVOICE_FILTERS = {"unpaid"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    ledger = services["ledger"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        number: str | None = Query(None),
        filter: str | None = Query(None),
        timeframe: str = Query("all"),
        limit: int = Query(100, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "invoices":
            result = _invoices(invoice_svc, id, number, filter)
        elif type == "summary":
            result = invoice_svc.summarize(timeframe)
        else:
            result = [entry.model_dump(mode="json") for entry in ledger.list_transactions(limit)]

        return success_response(result, request_id_of(request)).model_dump(mode="json")

    return router


def _invoices(invoice_svc, id, number, filter):
    """One invoice by id or number, else a list (optionally only unpaid ones)."""
    if id or number:
        invoice = invoice_svc.get_by_id(id) if id else invoice_svc.get_by_number(number)
        if invoice is None:
            raise ValueError(f"Invoice {id or number} not found")
        return invoice.model_dump(mode="json")

    if filter is not None and filter not in INVOICE_FILTERS:
        raise ValueError(
            f"Unknown invoice filter '{filter}'. Valid filters: {', '.join(sorted(INVOICE_FILTERS))}"
        )

    invoices = invoice_svc.list_unpaid() if filter == "unpaid" else invoice_svc.list_all()
    return [invoice.model_dump(mode="json") for invoice in invoices]
