from accounts.config import Settings
from accounts.emails.base import EmailSender
from accounts.emails.console import ConsoleSender


def get_sender(config: Settings) -> EmailSender:
    name = config.email_provider
    if name == "smtp":
        from accounts.emails.smtp import SMTPSender
        return SMTPSender(config)
    if name == "sendgrid":
        from accounts.emails.sendgrid import SendGridSender
        if not config.sendgrid_api_key:
            raise ValueError("SENDGRID_API_KEY is not set. Configure it or use EMAIL_PROVIDER=smtp.")
        return SendGridSender(config)
    if name == "console":
        return ConsoleSender()
    raise ValueError(f"Unknown email provider: {name}")
