"""
Envoi d'emails sortants.
- SmtpMailer: SMTP (STARTTLS optionnel), une connexion par envoi.
- LogMailer: utilisé quand SMTP_HOST n'est pas configuré (dev/tests), journalise seulement.
Les deux exposent send(to, subject, html, text).
"""
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

logger = logging.getLogger(__name__)

# module storefront.notifications.mailer
class SmtpMailer:
    def __init__(self, host: str, port: int, sender: str, user: str = "", password: str = "", use_tls: bool = True, timeout: int = 10):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text or "")
        msg.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(msg)
        logger.info("mailer.smtp sent to=%s subject=%s", to, subject)


class LogMailer:
    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        logger.info("mailer.log (SMTP non configuré) to=%s subject=%s", to, subject)


def build_mailer():
    """Construit le mailer depuis la configuration (SmtpMailer si SMTP_HOST, sinon LogMailer)."""
    from storefront.config import SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASSWORD, SMTP_USE_TLS, EMAIL_FROM
    if not SMTP_HOST:
        return LogMailer()
    return SmtpMailer(
        host=SMTP_HOST,
        port=SMTP_PORT,
        sender=EMAIL_FROM,
        user=SMTP_USER,
        password=SMTP_PASSWORD,
        use_tls=SMTP_USE_TLS,
    )
