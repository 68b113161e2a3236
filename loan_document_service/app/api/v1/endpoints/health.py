# API Router for Health Checks
from fastapi import APIRouter, Depends
import logging

from loan_document_service.app.config import settings
from loan_document_service.app.dependencies.services import ServiceContainer, get_services

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/health", tags=["Monitoring"])
async def health_check(services: ServiceContainer = Depends(get_services)):
    persistence_status = "connected" if await services.batch_repository.ping() else "disconnected"
    return {
        "status": "ok",
        "components": {"persistence": persistence_status},
        "service_name": settings.SERVICE_NAME_API,
    }
