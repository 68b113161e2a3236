# API Router for Consent Batches
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from opentelemetry import trace
from pydantic import BaseModel, Field, field_validator

from loan_document_service.app.api.v1.errors import to_http_exception
from loan_document_service.app.dependencies.services import ServiceContainer, get_services
from loan_document_service.app.models import RequestedDocument, SelectedLoan, RequestMetadata
from loan_document_service.app.models.consent_batch_db import RequestSource
from loan_document_service.app.service.commands import handlers as batch_handlers
from loan_document_service.app.service.commands import document_handlers
from loan_document_service.app.service.commands.models import CreateBatchCommand, SendOtpCommand, VerifyOtpCommand
from loan_document_service.app.service.exceptions import BaseLoanDocumentError

logger = logging.getLogger(__name__)
router = APIRouter()


# --- Request models ---

class LoanSelectionRequest(BaseModel):
    loan_id: str = Field(min_length=1)
    account_id: str = Field(min_length=1)
    bank_name: str = Field(min_length=1)
    loan_type: Optional[str] = None
    outstanding_amount: Optional[float] = None
    requested_documents: List[RequestedDocument] = Field(min_length=1)

class CreateBatchRequest(BaseModel):
    pan_number: str
    selected_loans: List[LoanSelectionRequest] = Field(min_length=1)
    consent_text: Optional[str] = None
    phone_number: Optional[str] = None
    email_address: Optional[str] = None
    source: RequestSource = RequestSource.WEB

    @field_validator('pan_number')
    @classmethod
    def pan_must_be_ten_characters(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 10 or not v.isalnum():
            raise ValueError('pan_number must be 10 alphanumeric characters')
        return v

class SendOtpRequest(BaseModel):
    batch_id: str = Field(min_length=1)

class VerifyOtpRequest(BaseModel):
    batch_id: str = Field(min_length=1)
    otp_code: str = Field(pattern=r"^\d{6}$")


def _request_metadata(request: Request, source: RequestSource) -> RequestMetadata:
    return RequestMetadata(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        session_id=request.headers.get("x-session-id"),
        source=source,
    )


# --- API Endpoints ---

@router.post("/create", summary="Create a consent batch for the selected loans and documents.")
async def create_batch_api(
    request: Request,
    request_data: CreateBatchRequest = Body(...),
    services: ServiceContainer = Depends(get_services),
):
    current_span = trace.get_current_span()
    current_span.set_attribute("api.operation", "create_batch")
    try:
        cmd = CreateBatchCommand(
            pan_number=request_data.pan_number,
            selected_loans=[SelectedLoan(**loan.model_dump()) for loan in request_data.selected_loans],
            consent_text=request_data.consent_text,
            phone_number=request_data.phone_number,
            email_address=request_data.email_address,
            request_metadata=_request_metadata(request, request_data.source),
        )
        batch = await batch_handlers.handle_create_batch(services, cmd)
        return {
            "success": True,
            "message": "Batch consent request created successfully",
            "batch_id": batch.batch_id,
            "total_loans": batch.total_loans,
            "total_documents": batch.total_documents_requested,
            "estimated_time": f"{services.runtime_mode.estimated_completion_minutes} minutes",
            "next_step": "send_otp",
        }
    except BaseLoanDocumentError as e:
        logger.warning(f"Batch creation rejected: {e}")
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating consent batch: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create batch consent request.")


@router.post("/send-otp", summary="Issue the OTP that authorizes a pending batch.")
async def send_otp_api(request_data: SendOtpRequest = Body(...), services: ServiceContainer = Depends(get_services)):
    try:
        batch, code = await batch_handlers.handle_send_otp(services, SendOtpCommand(batch_id=request_data.batch_id))
        response = {
            "success": True,
            "message": "OTP sent successfully",
            "batch_id": batch.batch_id,
            "expires_in": services.runtime_mode.otp_ttl_seconds,
        }
        if services.runtime_mode.demo_mode:
            response["demo_otp"] = code
        return response
    except BaseLoanDocumentError as e:
        logger.warning(f"Send OTP rejected for batch {request_data.batch_id}: {e}")
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error sending OTP for batch {request_data.batch_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to send OTP.")


@router.post("/resend-otp", summary="Start a fresh OTP cycle for a batch awaiting verification.")
async def resend_otp_api(request_data: SendOtpRequest = Body(...), services: ServiceContainer = Depends(get_services)):
    try:
        batch, code = await batch_handlers.handle_resend_otp(services, SendOtpCommand(batch_id=request_data.batch_id))
        response = {
            "success": True,
            "message": "OTP resent successfully",
            "batch_id": batch.batch_id,
            "expires_in": services.runtime_mode.otp_ttl_seconds,
        }
        if services.runtime_mode.demo_mode:
            response["demo_otp"] = code
        return response
    except BaseLoanDocumentError as e:
        logger.warning(f"Resend OTP rejected for batch {request_data.batch_id}: {e}")
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error resending OTP for batch {request_data.batch_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to resend OTP.")


@router.post("/verify-otp", summary="Verify the OTP and start document generation.")
async def verify_otp_api(request_data: VerifyOtpRequest = Body(...), services: ServiceContainer = Depends(get_services)):
    try:
        cmd = VerifyOtpCommand(batch_id=request_data.batch_id, otp_code=request_data.otp_code)
        batch = await batch_handlers.handle_verify_otp(services, cmd)
        return {
            "success": True,
            "message": "OTP verified. Document generation started.",
            "batch_id": batch.batch_id,
            "status": batch.status,
            "estimated_completion": batch.estimated_completion_time,
        }
    except BaseLoanDocumentError as e:
        logger.warning(f"OTP verification rejected for batch {request_data.batch_id}: {e}")
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error verifying OTP for batch {request_data.batch_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to verify OTP.")


@router.get("/status/{batch_id}", summary="Poll the progress of a batch.")
async def get_batch_status_api(batch_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        batch = await batch_handlers.handle_get_batch_status(services, batch_id)
        return {
            "success": True,
            "message": "Batch status retrieved",
            "batch": batch.get_summary(),
            "progress": {
                "percentage": batch.progress.percentage,
                "current_stage": batch.progress.current_stage,
                "stages": batch.stage_list(),
            },
            "bank_processing_status": batch.bank_status_list(),
            "documents_generated": batch.documents_generated,
            "documents_failed": batch.documents_failed,
            "errors": batch.errors,
        }
    except BaseLoanDocumentError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retrieving status of batch {batch_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve batch status.")


@router.get("/history/{pan_number}", summary="List the batches of a PAN, newest first.")
async def get_batch_history_api(
    pan_number: str,
    status: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    try:
        summaries = await batch_handlers.handle_get_batch_history(services, pan_number, status=status)
        return {
            "success": True,
            "message": "Batch history retrieved",
            "batches": summaries,
            "total": len(summaries),
        }
    except Exception as e:
        logger.error(f"Error listing batch history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve batch history.")


@router.get("/{batch_id}/documents", summary="List the documents generated for a batch.")
async def list_batch_documents_api(batch_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        documents = await document_handlers.handle_list_batch_documents(services, batch_id)
        return {"success": True, "batch_id": batch_id, "documents": documents, "total": len(documents)}
    except BaseLoanDocumentError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing documents of batch {batch_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list batch documents.")
