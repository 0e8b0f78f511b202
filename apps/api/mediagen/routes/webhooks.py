"""Provider callback route."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from starlette.concurrency import run_in_threadpool

from mediagen.core.logging_safety import safe_log_identifier
from mediagen.routes.dependencies import get_request_correlation_id, get_webhook_receiver
from mediagen.schemas.error import ErrorResponse
from mediagen.schemas.webhook import WebhookAck
from mediagen.services.webhooks import WebhookReceiver

router = APIRouter(tags=["Webhooks"])
logger = logging.getLogger(__name__)


@router.post(
    "/jobs/webhook",
    response_model=WebhookAck,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def receive_provider_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    correlation_id: Annotated[str, Depends(get_request_correlation_id)],
    receiver: Annotated[WebhookReceiver, Depends(get_webhook_receiver)],
) -> WebhookAck:
    # The signature covers the exact bytes sent, so the body is read unparsed.
    raw_body = await request.body()
    receipt = await run_in_threadpool(receiver.receive, raw_body, request.headers)
    if receipt.background is not None:
        logger.info(
            "webhook.materialization_queued correlation_id=%s",
            safe_log_identifier(correlation_id, prefix="cid"),
        )
        background_tasks.add_task(receipt.background)
    return receipt.ack
