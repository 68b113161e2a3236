import datetime
import logging
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class BatchStatus(str, Enum):
    PENDING = "pending"
    OTP_SENT = "otp_sent"
    VERIFIED = "verified"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

class RequestType(str, Enum):
    SINGLE_OTP_BATCH = "SINGLE_OTP_BATCH"
    INDIVIDUAL_CONSENT = "INDIVIDUAL_CONSENT"

class StageName(str, Enum):
    CONSENT_PENDING = "CONSENT_PENDING"
    OTP_VERIFICATION = "OTP_VERIFICATION"
    PROCESSING_STARTED = "PROCESSING_STARTED"
    FETCHING_DOCUMENTS = "FETCHING_DOCUMENTS"
    GENERATING_DOCUMENTS = "GENERATING_DOCUMENTS"
    COMPLETED = "COMPLETED"

class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

class BankStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

class DocumentType(str, Enum):
    STATEMENT_OF_ACCOUNT = "statement_of_account"
    REPAYMENT_SCHEDULE = "repayment_schedule"
    SANCTION_LETTER = "sanction_letter"
    FORECLOSURE_LETTER = "foreclosure_letter"
    NOC = "noc"

class DocumentPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

class NotificationType(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    PUSH = "PUSH"

class NotificationStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

class RequestSource(str, Enum):
    WEB = "WEB"
    MOBILE = "MOBILE"
    API = "API"


# Stage order shown to clients; seeded on every new batch.
STAGE_SEQUENCE: List[StageName] = [
    StageName.CONSENT_PENDING,
    StageName.OTP_VERIFICATION,
    StageName.PROCESSING_STARTED,
    StageName.FETCHING_DOCUMENTS,
    StageName.GENERATING_DOCUMENTS,
    StageName.COMPLETED,
]

_TERMINAL_STAGE_STATUSES = {StageStatus.COMPLETED.value, StageStatus.FAILED.value}
_TERMINAL_BANK_STATUSES = {BankStatus.COMPLETED.value, BankStatus.FAILED.value}


class BatchSubDocument(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True, validate_assignment=True)


class RequestedDocument(BatchSubDocument):
    document_type: DocumentType
    sub_type: Optional[str] = None # e.g., "last_6_months", "complete_tenure"
    priority: DocumentPriority = DocumentPriority.MEDIUM

class SelectedLoan(BatchSubDocument):
    loan_id: str
    account_id: str
    bank_name: str
    loan_type: Optional[str] = None
    outstanding_amount: Optional[float] = None
    requested_documents: List[RequestedDocument] = Field(default_factory=list)

class BatchStage(BatchSubDocument):
    stage_name: str
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    details: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_STAGE_STATUSES

class BankProcessingEntry(BatchSubDocument):
    bank_name: str
    status: BankStatus = BankStatus.PENDING
    documents_requested: int = 0
    documents_generated: int = 0
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_BANK_STATUSES

class BatchProgress(BatchSubDocument):
    percentage: int = Field(default=0, ge=0, le=100)
    current_stage: StageName = StageName.CONSENT_PENDING
    stages: Dict[str, BatchStage] = Field(default_factory=dict) # keyed by stage name, insertion ordered

class BatchError(BatchSubDocument):
    error_code: str
    error_message: str
    bank_name: Optional[str] = None
    document_type: Optional[str] = None
    timestamp: datetime.datetime = Field(default_factory=utcnow)
    resolved: bool = False

class BatchNotification(BatchSubDocument):
    type: NotificationType
    message: str
    sent_at: datetime.datetime = Field(default_factory=utcnow)
    status: NotificationStatus = NotificationStatus.SENT

class RequestMetadata(BatchSubDocument):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    source: RequestSource = RequestSource.WEB


class BatchSummary(BaseModel):
    batch_id: str
    pan_number: str
    status: str
    total_loans: int
    total_documents_requested: int
    documents_generated: int
    documents_failed: int
    progress: int
    current_stage: str
    created_at: datetime.datetime
    estimated_completion_time: Optional[datetime.datetime] = None
    is_consent_expired: bool


class ConsentBatchDB(BatchSubDocument):
    batch_id: str
    pan_number: str
    request_type: RequestType = RequestType.SINGLE_OTP_BATCH
    status: BatchStatus = BatchStatus.PENDING

    # OTP
    otp_code: Optional[str] = None
    otp_sent_at: Optional[datetime.datetime] = None
    otp_expires_at: Optional[datetime.datetime] = None
    otp_verified_at: Optional[datetime.datetime] = None
    otp_attempts: int = 0

    selected_loans: List[SelectedLoan] = Field(default_factory=list)

    total_documents_requested: int = 0
    documents_generated: int = 0
    documents_failed: int = 0

    processing_started_at: Optional[datetime.datetime] = None
    processing_completed_at: Optional[datetime.datetime] = None
    estimated_completion_time: Optional[datetime.datetime] = None

    consent_text: Optional[str] = None
    consent_version: str = "1.0"
    consent_granted_at: Optional[datetime.datetime] = None
    consent_expires_at: Optional[datetime.datetime] = None

    phone_number: Optional[str] = None
    email_address: Optional[str] = None

    progress: BatchProgress = Field(default_factory=BatchProgress)
    bank_processing_status: Dict[str, BankProcessingEntry] = Field(default_factory=dict) # keyed by bank name
    request_metadata: RequestMetadata = Field(default_factory=RequestMetadata)
    errors: List[BatchError] = Field(default_factory=list)
    notifications: List[BatchNotification] = Field(default_factory=list)

    created_at: datetime.datetime = Field(default_factory=utcnow)
    updated_at: datetime.datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime.datetime] = None

    @classmethod
    def open(
        cls,
        batch_id: str,
        pan_number: str,
        selected_loans: List[SelectedLoan],
        consent_ttl_hours: int,
        now: Optional[datetime.datetime] = None,
        **extra,
    ) -> "ConsentBatchDB":
        """Builds a new `pending` batch with the six-stage tracker seeded and totals computed."""
        now = now or utcnow()
        batch = cls(
            batch_id=batch_id,
            pan_number=pan_number.upper(),
            selected_loans=selected_loans,
            consent_expires_at=now + datetime.timedelta(hours=consent_ttl_hours),
            created_at=now,
            updated_at=now,
            **extra,
        )
        for stage_name in STAGE_SEQUENCE:
            batch.progress.stages[stage_name.value] = BatchStage(stage_name=stage_name.value)
        batch.update_stage(StageName.CONSENT_PENDING, StageStatus.IN_PROGRESS, now=now)
        batch.calculate_total_documents()
        return batch

    # --- Derived values ---

    @property
    def total_loans(self) -> int:
        return len(self.selected_loans)

    @property
    def overall_progress(self) -> int:
        if self.total_documents_requested == 0:
            return 0
        return round(self.documents_generated / self.total_documents_requested * 100)

    def is_otp_expired(self, now: Optional[datetime.datetime] = None) -> bool:
        return self.otp_expires_at is not None and self.otp_expires_at < (now or utcnow())

    def is_consent_expired(self, now: Optional[datetime.datetime] = None) -> bool:
        return self.consent_expires_at is not None and self.consent_expires_at < (now or utcnow())

    def stage_list(self) -> List[BatchStage]:
        return list(self.progress.stages.values())

    def bank_status_list(self) -> List[BankProcessingEntry]:
        return list(self.bank_processing_status.values())

    def calculate_total_documents(self) -> int:
        self.total_documents_requested = sum(len(loan.requested_documents) for loan in self.selected_loans)
        return self.total_documents_requested

    def get_summary(self, now: Optional[datetime.datetime] = None) -> BatchSummary:
        return BatchSummary(
            batch_id=self.batch_id,
            pan_number=self.pan_number,
            status=self.status,
            total_loans=self.total_loans,
            total_documents_requested=self.total_documents_requested,
            documents_generated=self.documents_generated,
            documents_failed=self.documents_failed,
            progress=self.overall_progress,
            current_stage=self.progress.current_stage,
            created_at=self.created_at,
            estimated_completion_time=self.estimated_completion_time,
            is_consent_expired=self.is_consent_expired(now),
        )

    # --- Ledger upserts ---

    def update_stage(
        self,
        stage_name: str,
        status: str,
        details: str = "",
        now: Optional[datetime.datetime] = None,
    ) -> BatchStage:
        """
        Find-or-create a stage entry and move it to `status`.

        A stage that is already completed or failed is left untouched, so repeating a
        terminal update does not move `completed_at`.
        """
        now = now or utcnow()
        key = StageName(stage_name).value
        stage = self.progress.stages.get(key)
        if stage is None:
            stage = BatchStage(stage_name=key)
            self.progress.stages[key] = stage

        if stage.is_terminal:
            logger.debug(f"Stage {key} of batch {self.batch_id} is already {stage.status}; ignoring update to {status}.")
            return stage

        stage.status = status
        stage.details = details
        if stage.status == StageStatus.IN_PROGRESS.value and stage.started_at is None:
            stage.started_at = now
        if stage.is_terminal:
            stage.completed_at = now
        return stage

    def update_bank_status(
        self,
        bank_name: str,
        status: str,
        documents_requested: Optional[int] = None,
        documents_generated: Optional[int] = None,
        error_message: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> BankProcessingEntry:
        """Find-or-create the ledger entry for `bank_name`; only the supplied fields are overwritten."""
        now = now or utcnow()
        entry = self.bank_processing_status.get(bank_name)
        if entry is None:
            entry = BankProcessingEntry(bank_name=bank_name)
            self.bank_processing_status[bank_name] = entry

        if entry.is_terminal:
            logger.debug(f"Bank {bank_name} of batch {self.batch_id} is already {entry.status}; ignoring update to {status}.")
            return entry

        entry.status = status
        if documents_requested is not None:
            entry.documents_requested = documents_requested
        if documents_generated is not None:
            entry.documents_generated = documents_generated
        if error_message is not None:
            entry.error_message = error_message

        if entry.status == BankStatus.PROCESSING.value and entry.started_at is None:
            entry.started_at = now
        if entry.is_terminal:
            entry.completed_at = now
        return entry

    def add_error(
        self,
        error_code: str,
        error_message: str,
        bank_name: Optional[str] = None,
        document_type: Optional[str] = None,
    ) -> BatchError:
        error = BatchError(
            error_code=error_code,
            error_message=error_message,
            bank_name=bank_name,
            document_type=document_type,
        )
        self.errors.append(error)
        return error

    def add_notification(self, type: str, message: str, status: str = NotificationStatus.SENT) -> BatchNotification:
        notification = BatchNotification(type=type, message=message, status=status)
        self.notifications.append(notification)
        return notification

    # --- Lifecycle transitions ---

    def mark_processing(self, estimated_completion_minutes: int, now: Optional[datetime.datetime] = None) -> None:
        now = now or utcnow()
        self.status = BatchStatus.PROCESSING
        self.processing_started_at = now
        self.estimated_completion_time = now + datetime.timedelta(minutes=estimated_completion_minutes)
        self.progress.current_stage = StageName.FETCHING_DOCUMENTS
        self.update_stage(StageName.PROCESSING_STARTED, StageStatus.COMPLETED, now=now)
        self.update_stage(StageName.FETCHING_DOCUMENTS, StageStatus.IN_PROGRESS, now=now)

    def mark_generating(self, now: Optional[datetime.datetime] = None) -> None:
        now = now or utcnow()
        self.progress.current_stage = StageName.GENERATING_DOCUMENTS
        self.update_stage(StageName.FETCHING_DOCUMENTS, StageStatus.COMPLETED, now=now)
        self.update_stage(StageName.GENERATING_DOCUMENTS, StageStatus.IN_PROGRESS, now=now)

    def record_document_generated(self) -> None:
        self.documents_generated += 1
        self.progress.percentage = self.overall_progress

    def mark_completed(self, now: Optional[datetime.datetime] = None) -> None:
        now = now or utcnow()
        self.status = BatchStatus.COMPLETED
        self.processing_completed_at = now
        self.completed_at = now
        self.progress.current_stage = StageName.COMPLETED
        self.progress.percentage = self.overall_progress
        self.update_stage(StageName.GENERATING_DOCUMENTS, StageStatus.COMPLETED, now=now)
        self.update_stage(StageName.COMPLETED, StageStatus.COMPLETED, now=now)

    def mark_generation_failed(
        self,
        error_message: str,
        bank_name: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> BatchError:
        """
        Terminates the batch as `failed`. Documents already generated (and the ledger
        entries of banks that finished) are kept; the units never produced are counted
        as failed.
        """
        now = now or utcnow()
        self.status = BatchStatus.FAILED
        self.processing_completed_at = now
        self.documents_failed = max(0, self.total_documents_requested - self.documents_generated)
        if bank_name is not None:
            self.update_bank_status(bank_name, BankStatus.FAILED, error_message=error_message, now=now)
        self.update_stage(StageName.GENERATING_DOCUMENTS, StageStatus.FAILED, details=error_message, now=now)
        return self.add_error("GENERATION_FAILED", error_message, bank_name=bank_name)
