"""
Provider webhook route.

Status codes drive the provider's redelivery: 400 for deliveries that fail
authentication, 500 for anything that failed while applying the event, 200
once the event is applied or deliberately ignored.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_webhook_reconciler
from application.services.webhook_reconciler import WebhookReconciler
from core.logging_config import get_logger
from domain.common.exceptions import WebhookSignatureException


router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    try:
        result = await reconciler.reconcile(headers, raw_body)
    except WebhookSignatureException as exc:
        logger.warning("stripe_webhook_rejected", error=exc.message)
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})
    except Exception as exc:
        logger.error("stripe_webhook_processing_failed", error=str(exc), exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return JSONResponse(
        status_code=200,
        content={"received": True, "event_id": result.event_id, "outcome": result.outcome.value},
    )
