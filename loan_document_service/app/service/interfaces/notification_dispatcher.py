from abc import ABC, abstractmethod

from loan_document_service.app.models import ConsentBatchDB, BatchNotification


class AbstractNotificationDispatcher(ABC):
    @abstractmethod
    async def dispatch(self, batch: ConsentBatchDB, notification: BatchNotification) -> str:
        """
        Hands a notification to the delivery channel.

        Returns:
            The delivery status to record on the notification ("sent" or "failed").
        """
        pass
