from typing import Optional

from google.cloud.firestore_v1.async_client import AsyncClient
from google.oauth2 import service_account
from loguru import logger

from streettalk.config.settings import AppSettings


def create_firestore(settings: AppSettings) -> Optional[AsyncClient]:
    if not settings.firestore_project:
        logger.warning("FIRESTORE_PROJECT is not set, using the in-memory document store")
        return None

    if settings.google_credentials_path:
        creds = service_account.Credentials.from_service_account_file(settings.google_credentials_path)
        return AsyncClient(project=settings.firestore_project, credentials=creds)
    # application default credentials
    return AsyncClient(project=settings.firestore_project)
