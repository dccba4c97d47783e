import logging

from accounts.emails.base import EmailSender, Message

logger = logging.getLogger(__name__)


class ConsoleSender(EmailSender):
    """Logs messages instead of delivering them. Keeps the last ones for tests."""

    def __init__(self) -> None:
        self.outbox: list[Message] = []

    @property
    def sender_name(self) -> str:
        return "console"

    async def send(self, message: Message) -> None:
        self.outbox.append(message)
        logger.info("email to=%s subject=%r (%d chars)", message.to, message.subject, len(message.body))
