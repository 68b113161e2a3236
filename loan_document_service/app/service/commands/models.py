# Pydantic models for Commands
from pydantic import BaseModel, Field
from typing import List, Optional
import uuid

from loan_document_service.app.models import SelectedLoan, RequestMetadata

class BaseCommand(BaseModel):
    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

# --- Consent batch commands ---

class CreateBatchCommand(BaseCommand):
    pan_number: str
    selected_loans: List[SelectedLoan]
    consent_text: Optional[str] = None
    phone_number: Optional[str] = None
    email_address: Optional[str] = None
    request_metadata: RequestMetadata = Field(default_factory=RequestMetadata)

class SendOtpCommand(BaseCommand):
    batch_id: str

class VerifyOtpCommand(BaseCommand):
    batch_id: str
    otp_code: str

# --- Document commands ---

class RecordDocumentAccessCommand(BaseCommand):
    document_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None

class CreateShareTokenCommand(BaseCommand):
    document_id: str
    expires_in_hours: Optional[int] = Field(default=None, ge=1, le=168)
    max_access: Optional[int] = Field(default=None, ge=1, le=100)
