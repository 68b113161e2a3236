from abc import ABC, abstractmethod
import datetime
from typing import Optional

from pydantic import BaseModel


class ConsentDirectoryRecord(BaseModel):
    pan_number: str
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    cibil_consent_granted: bool = False
    cibil_consent_expires_at: Optional[datetime.datetime] = None

    def is_cibil_consent_valid(self, now: datetime.datetime) -> bool:
        return (
            self.cibil_consent_granted
            and self.cibil_consent_expires_at is not None
            and self.cibil_consent_expires_at > now
        )


class AbstractConsentDirectory(ABC):
    @abstractmethod
    async def find_user(self, pan_number: str) -> Optional[ConsentDirectoryRecord]:
        """
        Looks up the PAN holder and their CIBIL consent.

        Args:
            pan_number: Upper-cased PAN.

        Returns:
            The directory record, or None when the PAN holder is unknown.
        """
        pass
