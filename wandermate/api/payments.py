# api/payments.py
"""
Payment Verification Endpoint
Checks a Razorpay checkout callback signature.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from ..agents.travel_agent import TravelAgent, get_travel_agent

router = APIRouter(prefix="/api", tags=["payments"])


class VerifyPaymentRequest(BaseModel):
    """Razorpay checkout handler payload"""
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


@router.post("/verify-payment")
async def verify_payment(request: VerifyPaymentRequest, agent: TravelAgent = Depends(get_travel_agent)):
    payment = agent.providers.payment
    if payment is None:
        issue = agent.readiness.issue_for("payment")
        logger.error(f"Payment verification unavailable: {issue.reason if issue else 'not configured'}")
        return JSONResponse(
            status_code=503,
            content={"verified": False, "error": "Payment provider not configured"}
        )

    if not payment.verify(request.razorpay_order_id, request.razorpay_payment_id, request.razorpay_signature):
        logger.warning(f"Payment signature mismatch for order {request.razorpay_order_id}")
        return JSONResponse(status_code=400, content={"verified": False, "error": "Invalid signature"})

    logger.info(f"Payment {request.razorpay_payment_id} verified for order {request.razorpay_order_id}")
    return {
        "verified": True,
        "payment_id": request.razorpay_payment_id,
        "order_id": request.razorpay_order_id,
    }
