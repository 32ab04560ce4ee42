from fastapi import Request

from app.config import settings
from app.services.whatsapp import WhatsAppClient


def get_db_path() -> str:
    """Provide the database path to endpoint functions."""
    return settings.db_path


def get_whatsapp_client(request: Request) -> WhatsAppClient:
    """The Cloud API client opened in the app lifespan."""
    return request.app.state.whatsapp
