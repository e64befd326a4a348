"""
FastAPI Routes for bill generation
Runs the e.firma workflow and returns the rendered portal screenshot
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Request, Response
from pydantic import ValidationError

from ....schemas.invoice import InvoiceRecord
from ....service.bill_workflow import generate_bill
from ....service.errors import AggregatedValidationError
from ....middlewares.trace_id_middleware import get_trace_id
from ....utils.logging import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/bills", tags=["Bills"])


def parse_invoice(request: Request, payload: Dict[str, Any]) -> InvoiceRecord:
    """Build the InvoiceRecord, reporting schema and format problems together.

    Format checks run on the raw payload: the model coerces strings such as
    "100.5" into numbers, which would hide a badly written amount.
    """
    format_errors = request.app.state.validator.validate_invoice(payload)
    try:
        invoice = InvoiceRecord.model_validate(payload)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        errors.extend(message for message in format_errors if message not in errors)
        raise AggregatedValidationError(errors) from e

    if format_errors:
        raise AggregatedValidationError(format_errors)
    return invoice


@router.post(
    "",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
async def create_bill(request: Request, payload: Dict[str, Any] = Body(...)) -> Response:
    """Generate a bill on the SAT portal with the stored e.firma"""
    state = request.app.state
    invoice = parse_invoice(request, payload)
    credentials = state.credential_store.bundle()

    logger.info("Bill requested", extra={
        "rfc": invoice.rfc,
        "concepts": len(invoice.concepto),
        "trace_id": get_trace_id(request),
    })
    screenshot = await generate_bill(state.browser, state.workflow, credentials, invoice)

    return Response(content=screenshot, media_type="image/png")
