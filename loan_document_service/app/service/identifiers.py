import datetime
import secrets
from typing import Optional

from loan_document_service.app.models.consent_batch_db import utcnow


def epoch_millis(now: Optional[datetime.datetime] = None) -> int:
    return int((now or utcnow()).timestamp() * 1000)

def generate_reference(prefix: str, now: Optional[datetime.datetime] = None) -> str:
    """External identifiers look like `BATCH_1718000000000_9f2c01ab`."""
    return f"{prefix}_{epoch_millis(now)}_{secrets.token_hex(4)}"
