import asyncio
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from accounts.config import Settings
from accounts.emails.base import EmailSender, Message


class SMTPSender(EmailSender):
    def __init__(self, config: Settings) -> None:
        self._host = config.smtp_host
        self._port = config.smtp_port
        self._user = config.smtp_user
        self._password = config.smtp_password
        self._from = formataddr((config.email_from_name, config.email_from))
        self._timeout = config.email_timeout_seconds

    @property
    def sender_name(self) -> str:
        return "smtp"

    def _build(self, message: Message) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._from
        msg["To"] = message.to
        msg["Subject"] = message.subject
        if message.is_html:
            msg.set_content("This message requires an HTML capable mail client.")
            msg.add_alternative(message.body, subtype="html")
        else:
            msg.set_content(message.body)
        return msg

    def _send_sync(self, message: Message) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as conn:
            if self._user:
                conn.starttls()
                conn.login(self._user, self._password)
            conn.send_message(self._build(message))

    async def send(self, message: Message) -> None:
        await asyncio.to_thread(self._send_sync, message)
