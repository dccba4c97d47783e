import httpx

from accounts.config import Settings
from accounts.emails.base import EmailSender, Message


class SendGridSender(EmailSender):
    BASE_URL = "https://api.sendgrid.com/v3"

    def __init__(self, config: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._from = {"email": config.email_from, "name": config.email_from_name}
        self._client = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={"Authorization": f"Bearer {config.sendgrid_api_key}"},
            timeout=float(config.email_timeout_seconds),
        )

    @property
    def sender_name(self) -> str:
        return "sendgrid"

    async def send(self, message: Message) -> None:
        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": self._from,
            "subject": message.subject,
            "content": [
                {"type": "text/html" if message.is_html else "text/plain", "value": message.body}
            ],
        }
        response = await self._client.post("/mail/send", json=payload)
        response.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()
