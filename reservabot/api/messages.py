from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from reservabot.api.v1.schemas import (
    MessageRequestSchema,
    MessageResponseSchema,
    PaymentResultRequestSchema,
    PaymentResultResponseSchema,
)
from reservabot.application.dto.message import ProcessMessageDTO
from reservabot.application.exceptions import PersistenceError
from reservabot.application.use_cases.process_message import ProcessMessageUseCase
from reservabot.application.use_cases.settle_payment import SettlePaymentUseCase
from reservabot.wiring.dependencies import get_process_message_use_case, get_settle_payment_use_case

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/messages", response_model=MessageResponseSchema)
def post_message(
    payload: MessageRequestSchema,
    use_case: ProcessMessageUseCase = Depends(get_process_message_use_case),
) -> MessageResponseSchema:
    result = use_case.execute(
        ProcessMessageDTO(
            business_id=payload.business_id,
            user_id=payload.user_id,
            message=payload.message,
            phone=payload.phone,
        )
    )
    return MessageResponseSchema(**result.to_dict())


@router.post("/payments/{payment_id}/result", response_model=PaymentResultResponseSchema)
def post_payment_result(
    payment_id: str,
    payload: PaymentResultRequestSchema,
    use_case: SettlePaymentUseCase = Depends(get_settle_payment_use_case),
) -> PaymentResultResponseSchema:
    try:
        result = use_case.settle(payment_id, approved=payload.approved)
    except PersistenceError as e:
        logger.warning("Payment settlement failed", extra={"payment_id": payment_id, "error": str(e)})
        raise HTTPException(status_code=404, detail=str(e))
    return PaymentResultResponseSchema(
        payment_id=result.payment_id,
        status=result.status,
        reservation_status=result.reservation_status,
        conversation_stage=result.conversation_stage,
    )
