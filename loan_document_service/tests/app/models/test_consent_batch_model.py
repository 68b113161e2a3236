# Unit Tests for the consent batch aggregate: stage tracker, bank ledger and transitions
import datetime
import pytest

from loan_document_service.app.models import ConsentBatchDB, BatchStatus, StageName, StageStatus, BankStatus
from loan_document_service.app.models.consent_batch_db import STAGE_SEQUENCE

NOW = datetime.datetime(2024, 6, 1, 10, 0, tzinfo=datetime.timezone.utc)


def test_open_seeds_stages_and_totals(make_batch):
    batch = make_batch(now=NOW)

    assert batch.status == BatchStatus.PENDING
    assert batch.pan_number == "ABCDE1234F"
    assert batch.total_loans == 2
    assert batch.total_documents_requested == 3
    assert [s.stage_name for s in batch.stage_list()] == [s.value for s in STAGE_SEQUENCE]
    assert batch.progress.stages["CONSENT_PENDING"].status == StageStatus.IN_PROGRESS
    assert batch.progress.stages["CONSENT_PENDING"].started_at == NOW
    assert all(s.status == StageStatus.PENDING for s in batch.stage_list()[1:])
    assert batch.consent_expires_at == NOW + datetime.timedelta(hours=24)
    assert batch.bank_processing_status == {}


def test_open_upper_cases_pan(loans):
    batch = ConsentBatchDB.open("BATCH_X", "abcde1234f", loans, consent_ttl_hours=24, now=NOW)
    assert batch.pan_number == "ABCDE1234F"


def test_update_stage_sets_started_at_once(make_batch):
    batch = make_batch(now=NOW)
    later = NOW + datetime.timedelta(minutes=1)

    batch.update_stage(StageName.FETCHING_DOCUMENTS, StageStatus.IN_PROGRESS, now=NOW)
    batch.update_stage(StageName.FETCHING_DOCUMENTS, StageStatus.IN_PROGRESS, details="still going", now=later)

    stage = batch.progress.stages["FETCHING_DOCUMENTS"]
    assert stage.started_at == NOW
    assert stage.details == "still going"
    assert stage.completed_at is None


def test_update_stage_completion_is_idempotent(make_batch):
    batch = make_batch(now=NOW)
    later = NOW + datetime.timedelta(minutes=5)

    batch.update_stage(StageName.OTP_VERIFICATION, StageStatus.COMPLETED, now=NOW)
    batch.update_stage(StageName.OTP_VERIFICATION, StageStatus.COMPLETED, now=later)

    assert batch.progress.stages["OTP_VERIFICATION"].completed_at == NOW


def test_terminal_stage_ignores_later_updates(make_batch):
    batch = make_batch(now=NOW)
    batch.update_stage(StageName.GENERATING_DOCUMENTS, StageStatus.FAILED, details="boom", now=NOW)

    batch.update_stage(StageName.GENERATING_DOCUMENTS, StageStatus.IN_PROGRESS, now=NOW + datetime.timedelta(seconds=1))

    stage = batch.progress.stages["GENERATING_DOCUMENTS"]
    assert stage.status == StageStatus.FAILED
    assert stage.details == "boom"


def test_update_stage_creates_missing_entry():
    batch = ConsentBatchDB(batch_id="BATCH_RAW", pan_number="ABCDE1234F")
    batch.update_stage(StageName.COMPLETED, StageStatus.COMPLETED, now=NOW)
    assert list(batch.progress.stages) == ["COMPLETED"]
    assert batch.progress.stages["COMPLETED"].completed_at == NOW


def test_update_stage_rejects_unknown_stage(make_batch):
    batch = make_batch(now=NOW)
    with pytest.raises(ValueError):
        batch.update_stage("NOT_A_STAGE", StageStatus.IN_PROGRESS)


def test_update_bank_status_find_or_create_and_partial_overwrite(make_batch):
    batch = make_batch(now=NOW)

    batch.update_bank_status("Bank A", BankStatus.PROCESSING, documents_requested=2, now=NOW)
    batch.update_bank_status("Bank A", BankStatus.PROCESSING, documents_generated=1, now=NOW + datetime.timedelta(seconds=3))

    assert len(batch.bank_processing_status) == 1
    entry = batch.bank_processing_status["Bank A"]
    assert entry.documents_requested == 2
    assert entry.documents_generated == 1
    assert entry.started_at == NOW
    assert entry.completed_at is None


def test_update_bank_status_terminal_sets_completed_at_once(make_batch):
    batch = make_batch(now=NOW)
    batch.update_bank_status("Bank B", BankStatus.PROCESSING, documents_requested=1, now=NOW)
    batch.update_bank_status("Bank B", BankStatus.COMPLETED, documents_generated=1, now=NOW)

    batch.update_bank_status("Bank B", BankStatus.FAILED, error_message="late", now=NOW + datetime.timedelta(minutes=1))

    entry = batch.bank_processing_status["Bank B"]
    assert entry.status == BankStatus.COMPLETED
    assert entry.completed_at == NOW
    assert entry.error_message is None


def test_bank_entries_keep_insertion_order(make_batch):
    batch = make_batch(now=NOW)
    for bank in ["Zeta Bank", "Alpha Bank", "Mid Bank"]:
        batch.update_bank_status(bank, BankStatus.PROCESSING, now=NOW)
    assert [e.bank_name for e in batch.bank_status_list()] == ["Zeta Bank", "Alpha Bank", "Mid Bank"]


def test_overall_progress(make_batch):
    batch = make_batch(now=NOW)
    assert batch.overall_progress == 0
    batch.record_document_generated()
    assert batch.overall_progress == 33
    batch.record_document_generated()
    assert batch.overall_progress == 67
    assert batch.progress.percentage == 67


def test_overall_progress_zero_when_nothing_requested(make_batch):
    batch = make_batch(selected_loans=[], now=NOW)
    assert batch.total_documents_requested == 0
    assert batch.overall_progress == 0


def test_expiry_checks(make_batch):
    batch = make_batch(now=NOW)
    batch.otp_expires_at = NOW + datetime.timedelta(minutes=5)

    assert not batch.is_otp_expired(NOW)
    assert batch.is_otp_expired(NOW + datetime.timedelta(minutes=6))
    assert not batch.is_consent_expired(NOW + datetime.timedelta(hours=23))
    assert batch.is_consent_expired(NOW + datetime.timedelta(hours=25))


def test_get_summary_is_derived_from_stored_fields(make_batch):
    batch = make_batch(now=NOW)

    first = batch.get_summary(NOW)
    second = batch.get_summary(NOW)

    assert first.model_dump_json() == second.model_dump_json()
    assert first.total_loans == 2
    assert first.total_documents_requested == 3
    assert first.progress == 0
    assert first.current_stage == "CONSENT_PENDING"
    assert first.is_consent_expired is False
    assert batch.get_summary(NOW + datetime.timedelta(days=2)).is_consent_expired is True


def test_mark_processing_and_completed(make_batch):
    batch = make_batch(now=NOW)
    batch.mark_processing(estimated_completion_minutes=10, now=NOW)

    assert batch.status == BatchStatus.PROCESSING
    assert batch.estimated_completion_time == NOW + datetime.timedelta(minutes=10)
    assert batch.progress.current_stage == StageName.FETCHING_DOCUMENTS
    assert batch.progress.stages["PROCESSING_STARTED"].status == StageStatus.COMPLETED
    assert batch.progress.stages["FETCHING_DOCUMENTS"].status == StageStatus.IN_PROGRESS

    batch.mark_generating(now=NOW)
    for _ in range(3):
        batch.record_document_generated()
    batch.mark_completed(now=NOW)

    assert batch.status == BatchStatus.COMPLETED
    assert batch.completed_at == NOW
    assert batch.processing_completed_at == NOW
    assert batch.progress.percentage == 100
    assert batch.progress.current_stage == StageName.COMPLETED
    assert batch.progress.stages["GENERATING_DOCUMENTS"].status == StageStatus.COMPLETED
    assert batch.progress.stages["COMPLETED"].status == StageStatus.COMPLETED


def test_mark_generation_failed_keeps_partial_progress(make_batch):
    batch = make_batch(now=NOW)
    batch.mark_processing(10, now=NOW)
    batch.mark_generating(now=NOW)
    batch.update_bank_status("Bank A", BankStatus.PROCESSING, documents_requested=2, now=NOW)
    batch.record_document_generated()
    batch.record_document_generated()
    batch.update_bank_status("Bank A", BankStatus.COMPLETED, documents_generated=2, now=NOW)
    batch.update_bank_status("Bank B", BankStatus.PROCESSING, documents_requested=1, now=NOW)

    error = batch.mark_generation_failed("bank timeout", bank_name="Bank B", now=NOW)

    assert batch.status == BatchStatus.FAILED
    assert error.error_code == "GENERATION_FAILED"
    assert error.bank_name == "Bank B"
    assert batch.errors == [error]
    assert batch.documents_generated == 2
    assert batch.documents_failed == 1
    assert batch.documents_generated + batch.documents_failed <= batch.total_documents_requested
    assert batch.bank_processing_status["Bank A"].status == BankStatus.COMPLETED
    assert batch.bank_processing_status["Bank B"].status == BankStatus.FAILED
    assert batch.bank_processing_status["Bank B"].error_message == "bank timeout"
    assert batch.progress.stages["GENERATING_DOCUMENTS"].status == StageStatus.FAILED


def test_model_round_trips_through_a_mongo_document(make_batch):
    batch = make_batch(now=NOW)
    batch.update_bank_status("Bank A", BankStatus.PROCESSING, documents_requested=2, now=NOW)
    batch.add_notification("SMS", "hello")

    restored = ConsentBatchDB(**batch.model_dump())

    assert restored == batch
    assert restored.model_dump()["status"] == "pending"
