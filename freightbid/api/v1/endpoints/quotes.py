"""
Quote API Endpoints.

POST /quotes prices a shipment across the customer's tied-up and temporary
vendors and eligible public vendors.
"""
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from freightbid.api.deps import Quotes
from freightbid.schemas.quote import ShipmentRequest
from freightbid.services.quote_service import NoQuotesFound

router = APIRouter(prefix="/quotes", tags=["Quotes"])


@router.post(
    "",
    summary="Quote a shipment",
    description="""
    Price a shipment across every eligible vendor.

    Returns quotes grouped by pool (tied_up, temporary, public) plus the
    lowest committed quote. Public quotes appear only when cheaper than the
    best committed quote, and are masked for unsubscribed customers.

    Responds 404 with the exclusion reasons when no vendor can quote.
    """
)
async def create_quote(request: ShipmentRequest, service: Quotes):
    result = await service.compute_quotes(request)
    if isinstance(result, NoQuotesFound):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=result.to_dict())
    return result.to_dict()
