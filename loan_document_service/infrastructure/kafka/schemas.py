# Pydantic models for Kafka message structures
import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class NotificationMessage(BaseModel):
    """Published to the notification topic; a delivery service turns it into an SMS, email or push."""
    batch_id: str
    pan_number: str
    type: str # SMS, EMAIL or PUSH
    message: str
    phone_number: Optional[str] = None
    email_address: Optional[str] = None
    sent_at: datetime.datetime

    @field_validator('type')
    @classmethod
    def type_must_be_valid(cls, v: str) -> str:
        if v.upper() not in ["SMS", "EMAIL", "PUSH"]:
            raise ValueError('type must be one of SMS, EMAIL or PUSH')
        return v.upper()
