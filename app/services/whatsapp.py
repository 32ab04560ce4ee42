import hashlib
import hmac
import logging
import httpx

logger = logging.getLogger(__name__)


class WhatsAppError(Exception):
    """Sending a message through the Cloud API failed."""


class WhatsAppClient:
    def __init__(self, access_token: str, phone_number_id: str, api_version: str = "v18.0"):
        self.messages_url = f"https://graph.facebook.com/{api_version}/{phone_number_id}/messages"
        self.configured = bool(access_token and phone_number_id)
        self._client = httpx.AsyncClient(timeout=15.0)

        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    # -- Outbound messages --

    async def send_text(self, to: str, body: str) -> dict | None:
        """Send a plain text message. Returns the Cloud API response, or None when unconfigured."""
        if not self.configured:
            logger.warning("WhatsApp credentials not configured; reply to %s dropped", to)
            return None

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        try:
            response = await self._client.post(self.messages_url, headers=self.headers, json=payload)
        except httpx.RequestError as e:
            raise WhatsAppError(f"WhatsApp request failed: {e}") from e

        if response.is_error:
            logger.error("WhatsApp API error %s: %s", response.status_code, response.text)
            raise WhatsAppError(f"WhatsApp API returned {response.status_code}")

        data = response.json()
        logger.info("Reply sent to %s", to)
        return data

    async def close(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()


def verify_signature(body: bytes, signature: str, app_secret: str) -> bool:
    """Check Meta's ``X-Hub-Signature-256`` header against the raw request body."""
    if not signature.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)
