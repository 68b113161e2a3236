# Unit Tests for the generated document model
import datetime
import pytest

from loan_document_service.app.models import DocumentDB, DocumentStatus, AccessType

NOW = datetime.datetime(2024, 6, 1, 10, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def document() -> DocumentDB:
    return DocumentDB(
        document_id="DOC_1_abcdef01",
        request_id="BATCH_1_deadbeef",
        pan_number="ABCDE1234F",
        loan_id="LN-A-1",
        account_id="ACC-A-1",
        bank_name="Bank A",
        document_type="statement_of_account",
        status=DocumentStatus.READY,
        file_name="Bank_A_statement_of_account_1.pdf",
        file_path="/uploads/documents/DOC_1_abcdef01.pdf",
        file_size=512 * 1024,
        mime_type="application/pdf",
        download_url="/api/v1/documents/DOC_1_abcdef01/download",
        expires_at=NOW + datetime.timedelta(days=30),
        max_downloads=2,
    )


def test_display_name_and_size(document):
    assert document.display_name == "Statement of Account"
    assert document.file_size_formatted == "512.0 KB"
    document.file_size = None
    assert document.file_size_formatted == "Unknown"
    document.document_type = "custom_type"
    assert document.display_name == "custom_type"


def test_expiry(document):
    assert not document.is_expired(NOW)
    assert document.days_until_expiry(NOW) == 30
    assert document.is_expired(NOW + datetime.timedelta(days=31))
    assert document.days_until_expiry(NOW + datetime.timedelta(days=31)) == 0


def test_download_block_reasons(document):
    assert document.download_block_reason(NOW) is None
    assert document.can_download(NOW)

    assert document.download_block_reason(NOW + datetime.timedelta(days=31)) == "DOCUMENT_EXPIRED"

    document.status = DocumentStatus.PROCESSING
    assert document.download_block_reason(NOW) == "DOCUMENT_NOT_READY"

    document.status = DocumentStatus.DOWNLOADED
    document.download_count = 2
    assert document.download_block_reason(NOW) == "DOWNLOAD_LIMIT_REACHED"


def test_record_download_updates_counters(document):
    entry = document.record_access(AccessType.DOWNLOAD, ip_address="10.0.0.1", user_agent="pytest", now=NOW)

    assert entry.access_type == "DOWNLOAD"
    assert document.download_count == 1
    assert document.last_downloaded_at == NOW
    assert document.status == DocumentStatus.DOWNLOADED
    assert document.access_log == [entry]


def test_record_view_does_not_count_as_download(document):
    document.record_access(AccessType.VIEW, now=NOW)
    assert document.download_count == 0
    assert document.status == DocumentStatus.READY
    assert len(document.access_log) == 1


def test_share_token_lifecycle(document):
    share_token = document.generate_share_token(expires_in_hours=1, max_access=2, now=NOW)

    assert len(share_token.token) == 64
    assert document.validate_share_token(share_token.token, NOW)
    assert document.validate_share_token(share_token.token, NOW)
    assert not document.validate_share_token(share_token.token, NOW) # max_access reached
    assert document.share_tokens[0].access_count == 2


def test_share_token_expiry_and_unknown_token(document):
    share_token = document.generate_share_token(expires_in_hours=1, now=NOW)

    assert not document.validate_share_token(share_token.token, NOW + datetime.timedelta(hours=2))
    assert not document.validate_share_token("0" * 64, NOW)
    document.share_tokens[0].is_active = False
    assert not document.validate_share_token(share_token.token, NOW)


def test_summary_and_file_descriptor(document):
    summary = document.get_summary(NOW)
    assert summary.display_name == "Statement of Account"
    assert summary.file_size == "512.0 KB"
    assert summary.is_expired is False
    assert summary.can_download is True
    assert summary.days_until_expiry == 30

    descriptor = document.file_descriptor()
    assert descriptor.document_id == document.document_id
    assert descriptor.file_path == "/uploads/documents/DOC_1_abcdef01.pdf"
    assert descriptor.mime_type == "application/pdf"
