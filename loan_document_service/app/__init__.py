# loan_document_service/app/__init__.py
import logging

logger = logging.getLogger(__name__)
logger.info("Loan Document App Initialized")
