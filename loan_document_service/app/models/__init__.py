from .consent_batch_db import (
    ConsentBatchDB,
    SelectedLoan,
    RequestedDocument,
    BatchStage,
    BankProcessingEntry,
    BatchProgress,
    BatchError,
    BatchNotification,
    RequestMetadata,
    BatchSummary,
    BatchStatus,
    StageName,
    StageStatus,
    BankStatus,
    NotificationType,
    NotificationStatus,
)
from .document_db import DocumentDB, DocumentSummary, FileDescriptor, DocumentStatus, AccessType, ShareToken

__all__ = [
    "ConsentBatchDB",
    "SelectedLoan",
    "RequestedDocument",
    "BatchStage",
    "BankProcessingEntry",
    "BatchProgress",
    "BatchError",
    "BatchNotification",
    "RequestMetadata",
    "BatchSummary",
    "BatchStatus",
    "StageName",
    "StageStatus",
    "BankStatus",
    "NotificationType",
    "NotificationStatus",
    "DocumentDB",
    "DocumentSummary",
    "FileDescriptor",
    "DocumentStatus",
    "AccessType",
    "ShareToken",
]
