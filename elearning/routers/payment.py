import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from elearning.config import settings
from elearning.errors import BadRequest, Internal
from elearning.services.payment_gateway import PayOSClient, PaymentGatewayError, get_payment_links

logger = logging.getLogger(__name__)

router = APIRouter()

class PaymentLinkRequest(BaseModel):
    amount: int | None = None
    description: str | None = None

@router.post("/api/create-payment-link")
async def create_payment_link(data: PaymentLinkRequest, payos: PayOSClient = Depends(get_payment_links)):
    if not data.amount or not data.description:
        raise BadRequest("Amount and description are required")

    try:
        return await payos.create_payment_link(
            amount=data.amount,
            description=data.description,
            return_url=f"{settings.FRONTEND_URL}/success",
            cancel_url=f"{settings.FRONTEND_URL}/cancel",
        )
    except PaymentGatewayError as e:
        logger.error(f"Error creating payment link: {e}")
        raise Internal("Internal Server Error")

@router.post("/receive-hook")
async def receive_hook(request: Request):
    # Gateway callbacks are echoed back unverified; enrollment only happens via /api/verification.
    payload = await request.json()
    logger.info(f"Payment webhook received: {payload}")
    return JSONResponse(status_code=200, content=payload)
