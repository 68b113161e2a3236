import datetime
import math
import secrets
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .consent_batch_db import utcnow


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    DOWNLOADED = "downloaded"
    FAILED = "failed"
    EXPIRED = "expired"

class AccessType(str, Enum):
    VIEW = "VIEW"
    DOWNLOAD = "DOWNLOAD"
    SHARE = "SHARE"
    DELETE = "DELETE"

class SourceSystem(str, Enum):
    BANK_API = "BANK_API"
    SCRAPING = "SCRAPING"
    MANUAL_UPLOAD = "MANUAL_UPLOAD"
    GENERATED = "GENERATED"


DISPLAY_NAMES = {
    "statement_of_account": "Statement of Account",
    "repayment_schedule": "Repayment Schedule",
    "sanction_letter": "Sanction Letter",
    "foreclosure_letter": "Foreclosure Letter",
    "noc": "No Objection Certificate",
    "other": "Other Document",
}

# Documents in these states can be removed by the expiry sweep once past expires_at.
SWEEPABLE_DOCUMENT_STATUSES = [DocumentStatus.READY.value, DocumentStatus.DOWNLOADED.value]


class DocumentSubModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True, validate_assignment=True)


class ShareToken(DocumentSubModel):
    token: str
    created_at: datetime.datetime = Field(default_factory=utcnow)
    expires_at: datetime.datetime
    access_count: int = 0
    max_access: int = 5
    is_active: bool = True

    def is_usable(self, now: datetime.datetime) -> bool:
        return self.is_active and self.expires_at > now and self.access_count < self.max_access

class AccessLogEntry(DocumentSubModel):
    accessed_at: datetime.datetime = Field(default_factory=utcnow)
    access_type: AccessType
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None


class DocumentSummary(BaseModel):
    document_id: str
    request_id: str
    loan_id: str
    bank_name: str
    document_type: str
    display_name: str
    status: str
    file_name: Optional[str] = None
    file_size: str
    generated_at: Optional[datetime.datetime] = None
    expires_at: datetime.datetime
    is_expired: bool
    days_until_expiry: int
    download_count: int
    can_download: bool

class FileDescriptor(BaseModel):
    document_id: str
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    download_url: Optional[str] = None
    checksum: Optional[str] = None


class DocumentDB(DocumentSubModel):
    document_id: str
    request_id: str # batch_id for documents generated by a consent batch
    pan_number: str
    loan_id: str
    account_id: str
    bank_name: str
    document_type: str
    document_sub_type: Optional[str] = None
    status: DocumentStatus = DocumentStatus.PENDING

    # File information
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None # bytes
    mime_type: Optional[str] = None
    download_url: Optional[str] = None
    checksum: Optional[str] = None

    generated_at: Optional[datetime.datetime] = None
    expires_at: datetime.datetime = Field(default_factory=lambda: utcnow() + datetime.timedelta(days=30))
    download_count: int = 0
    max_downloads: int = 10
    last_downloaded_at: Optional[datetime.datetime] = None
    source_system: SourceSystem = SourceSystem.BANK_API

    share_tokens: List[ShareToken] = Field(default_factory=list)
    access_log: List[AccessLogEntry] = Field(default_factory=list)

    created_at: datetime.datetime = Field(default_factory=utcnow)
    updated_at: datetime.datetime = Field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES.get(self.document_type, self.document_type)

    @property
    def file_size_formatted(self) -> str:
        if not self.file_size:
            return "Unknown"
        units = ["B", "KB", "MB", "GB"]
        size = float(self.file_size)
        unit_index = 0
        while size >= 1024 and unit_index < len(units) - 1:
            size /= 1024
            unit_index += 1
        return f"{size:.1f} {units[unit_index]}"

    def is_expired(self, now: Optional[datetime.datetime] = None) -> bool:
        return self.expires_at < (now or utcnow())

    def days_until_expiry(self, now: Optional[datetime.datetime] = None) -> int:
        remaining = self.expires_at - (now or utcnow())
        return max(0, math.ceil(remaining.total_seconds() / 86400))

    def download_block_reason(self, now: Optional[datetime.datetime] = None) -> Optional[str]:
        """Returns why a download is refused, or None when it is allowed."""
        if self.is_expired(now):
            return "DOCUMENT_EXPIRED"
        if self.status not in (DocumentStatus.READY.value, DocumentStatus.DOWNLOADED.value):
            return "DOCUMENT_NOT_READY"
        if self.download_count >= self.max_downloads:
            return "DOWNLOAD_LIMIT_REACHED"
        return None

    def can_download(self, now: Optional[datetime.datetime] = None) -> bool:
        return self.download_block_reason(now) is None

    def record_access(
        self,
        access_type: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> AccessLogEntry:
        now = now or utcnow()
        entry = AccessLogEntry(
            accessed_at=now,
            access_type=access_type,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
        )
        self.access_log.append(entry)
        if entry.access_type == AccessType.DOWNLOAD.value:
            self.download_count += 1
            self.last_downloaded_at = now
            self.status = DocumentStatus.DOWNLOADED
        self.updated_at = now
        return entry

    def generate_share_token(
        self,
        expires_in_hours: int = 24,
        max_access: int = 5,
        now: Optional[datetime.datetime] = None,
    ) -> ShareToken:
        now = now or utcnow()
        share_token = ShareToken(
            token=secrets.token_hex(32),
            created_at=now,
            expires_at=now + datetime.timedelta(hours=expires_in_hours),
            max_access=max_access,
        )
        self.share_tokens.append(share_token)
        return share_token

    def validate_share_token(self, token: str, now: Optional[datetime.datetime] = None) -> bool:
        """Consumes one access on a usable token. Returns False when no usable token matches."""
        now = now or utcnow()
        for share_token in self.share_tokens:
            if secrets.compare_digest(share_token.token, token) and share_token.is_usable(now):
                share_token.access_count += 1
                return True
        return False

    def file_descriptor(self) -> FileDescriptor:
        return FileDescriptor(
            document_id=self.document_id,
            file_name=self.file_name,
            file_path=self.file_path,
            file_size=self.file_size,
            mime_type=self.mime_type,
            download_url=self.download_url,
            checksum=self.checksum,
        )

    def get_summary(self, now: Optional[datetime.datetime] = None) -> DocumentSummary:
        now = now or utcnow()
        return DocumentSummary(
            document_id=self.document_id,
            request_id=self.request_id,
            loan_id=self.loan_id,
            bank_name=self.bank_name,
            document_type=self.document_type,
            display_name=self.display_name,
            status=self.status,
            file_name=self.file_name,
            file_size=self.file_size_formatted,
            generated_at=self.generated_at,
            expires_at=self.expires_at,
            is_expired=self.is_expired(now),
            days_until_expiry=self.days_until_expiry(now),
            download_count=self.download_count,
            can_download=self.can_download(now),
        )
