# Clients for the external consent directory (PAN holders and their CIBIL consent)
import datetime
import logging
from typing import Optional

import httpx

from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.service.exceptions import ConsentDirectoryError
from loan_document_service.app.service.interfaces.consent_directory import AbstractConsentDirectory, ConsentDirectoryRecord

logger = logging.getLogger(__name__)


class ConsentServiceClient(AbstractConsentDirectory):
    def __init__(self, http_client: httpx.AsyncClient, base_url: str):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def find_user(self, pan_number: str) -> Optional[ConsentDirectoryRecord]:
        request_url = f"{self.base_url}/users/{pan_number}"
        logger.debug(f"Querying consent directory: {request_url}")

        try:
            response = await self.http_client.get(request_url)
            if response.status_code == 404:
                logger.info(f"Consent directory has no user for PAN {pan_number}.")
                return None
            response.raise_for_status()
            return ConsentDirectoryRecord(**response.json())
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling consent directory: {e.response.status_code} - {e.response.text}", exc_info=True)
            raise ConsentDirectoryError(f"Consent directory returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error calling consent directory: {e}", exc_info=True)
            raise ConsentDirectoryError(f"Consent directory unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Unparseable consent directory response for PAN {pan_number}: {e}", exc_info=True)
            raise ConsentDirectoryError("Consent directory returned an invalid payload") from e


class DemoConsentDirectory(AbstractConsentDirectory):
    """Treats every PAN as a known user with a valid CIBIL consent. Used when no directory URL is configured."""

    def __init__(self, consent_valid_for: datetime.timedelta = datetime.timedelta(days=30)):
        self.consent_valid_for = consent_valid_for

    async def find_user(self, pan_number: str) -> Optional[ConsentDirectoryRecord]:
        return ConsentDirectoryRecord(
            pan_number=pan_number,
            full_name="Demo User",
            phone_number="9999999999",
            email=f"{pan_number.lower()}@example.com",
            cibil_consent_granted=True,
            cibil_consent_expires_at=utcnow() + self.consent_valid_for,
        )
