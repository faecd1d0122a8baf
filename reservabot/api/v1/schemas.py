from pydantic import BaseModel, Field


class MessageRequestSchema(BaseModel):
    business_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    message: str
    phone: str | None = None


class MessageResponseSchema(BaseModel):
    reply: str
    intention: str
    confidence: float
    missing_fields: list[str] = Field(default_factory=list)
    conversation_stage: str
    conversation_id: str | None = None


class PaymentResultRequestSchema(BaseModel):
    approved: bool


class PaymentResultResponseSchema(BaseModel):
    payment_id: str
    status: str
    reservation_status: str | None = None
    conversation_stage: str | None = None
