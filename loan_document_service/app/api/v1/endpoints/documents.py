# API Router for Generated Documents
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from loan_document_service.app.api.v1.errors import to_http_exception
from loan_document_service.app.dependencies.services import ServiceContainer, get_services
from loan_document_service.app.service.commands import document_handlers
from loan_document_service.app.service.commands.models import RecordDocumentAccessCommand, CreateShareTokenCommand
from loan_document_service.app.service.exceptions import BaseLoanDocumentError

logger = logging.getLogger(__name__)
router = APIRouter()


class ShareDocumentRequest(BaseModel):
    expires_in_hours: Optional[int] = Field(default=None, ge=1, le=168)
    max_access: Optional[int] = Field(default=None, ge=1, le=100)


def _access_command(document_id: str, request: Request) -> RecordDocumentAccessCommand:
    return RecordDocumentAccessCommand(
        document_id=document_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        session_id=request.headers.get("x-session-id"),
    )


@router.get("/pan/{pan_number}", summary="List the documents generated for a PAN, newest first.")
async def list_pan_documents_api(
    pan_number: str,
    status: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    try:
        documents = await document_handlers.handle_list_pan_documents(services, pan_number, status=status)
        return {"success": True, "documents": documents, "total": len(documents)}
    except Exception as e:
        logger.error(f"Error listing documents by PAN: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list documents.")


@router.get("/shared/{token}", summary="Resolve a share link to its file.")
async def access_shared_document_api(token: str, services: ServiceContainer = Depends(get_services)):
    try:
        descriptor = await document_handlers.handle_access_shared_document(services, token)
        return {"success": True, "file": descriptor}
    except BaseLoanDocumentError as e:
        logger.info(f"Shared document access refused: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error resolving share link: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to access shared document.")


@router.get("/{document_id}", summary="Get a document summary (recorded as a view).")
async def get_document_api(document_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    try:
        summary = await document_handlers.handle_get_document(services, _access_command(document_id, request))
        return {"success": True, "document": summary}
    except BaseLoanDocumentError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retrieving document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve document.")


@router.post("/{document_id}/download", summary="Record a download and return the file descriptor.")
async def download_document_api(document_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    try:
        descriptor = await document_handlers.handle_download_document(services, _access_command(document_id, request))
        return {"success": True, "file": descriptor}
    except BaseLoanDocumentError as e:
        logger.info(f"Download refused for document {document_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error downloading document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to download document.")


@router.post("/{document_id}/share", summary="Create a time-limited share link for a document.")
async def share_document_api(
    document_id: str,
    request_data: Optional[ShareDocumentRequest] = Body(default=None),
    services: ServiceContainer = Depends(get_services),
):
    request_data = request_data or ShareDocumentRequest()
    try:
        cmd = CreateShareTokenCommand(
            document_id=document_id,
            expires_in_hours=request_data.expires_in_hours,
            max_access=request_data.max_access,
        )
        share_token = await document_handlers.handle_share_document(services, cmd)
        return {
            "success": True,
            "share_token": share_token.token,
            "expires_at": share_token.expires_at,
            "max_access": share_token.max_access,
        }
    except BaseLoanDocumentError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error sharing document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create share link.")


@router.delete("/{document_id}", summary="Delete a generated document.")
async def delete_document_api(document_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    try:
        await document_handlers.handle_delete_document(services, _access_command(document_id, request))
        return {"success": True, "message": "Document deleted successfully"}
    except BaseLoanDocumentError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete document.")
