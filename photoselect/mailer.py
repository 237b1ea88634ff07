"""
Transactional email over SMTP.

Without a configured MAIL_SERVER the service runs in development mode:
messages are logged (including invitation links) instead of sent, and
every send reports success.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP settings."""

    smtp_host: Optional[str]
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    from_email: str = 'noreply@photoselect.app'
    from_name: str = 'PhotoSelect'
    use_tls: bool = True

    @classmethod
    def from_config(cls, config) -> 'EmailConfig':
        return cls(
            smtp_host=config.get('MAIL_SERVER'),
            smtp_port=config['MAIL_PORT'],
            smtp_user=config.get('MAIL_USERNAME'),
            smtp_password=config.get('MAIL_PASSWORD'),
            from_email=config['MAIL_FROM_ADDRESS'],
            from_name=config['MAIL_FROM_NAME'],
            use_tls=config['MAIL_USE_TLS'],
        )


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None
    development_mode: bool = False

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'error': self.error,
            'development_mode': self.development_mode,
        }


class EmailService:
    """Sends invitation and test emails."""

    def __init__(self, config: EmailConfig, base_url: str):
        self.config = config
        self.base_url = base_url.rstrip('/')

    @property
    def development_mode(self) -> bool:
        return not self.config.smtp_host

    def send(self, to_email: str, subject: str, body_html: str, body_text: str) -> EmailResult:
        """
        Send one email.

        Note: synchronous. SMTP errors are logged and returned, not raised.
        """
        if self.development_mode:
            logger.info('Email (development mode, not sent) to=%s subject=%r\n%s',
                        to_email, subject, body_text)
            return EmailResult(True, development_mode=True)

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f'{self.config.from_name} <{self.config.from_email}>'
        msg['To'] = to_email
        msg.attach(MIMEText(body_text, 'plain'))
        msg.attach(MIMEText(body_html, 'html'))

        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
                if self.config.use_tls:
                    server.starttls()
                if self.config.smtp_user and self.config.smtp_password:
                    server.login(self.config.smtp_user, self.config.smtp_password)
                server.sendmail(self.config.from_email, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error('Email delivery failed to=%s subject=%r: %s', to_email, subject, e)
            return EmailResult(False, error=str(e))

        logger.info('Email sent to=%s subject=%r', to_email, subject)
        return EmailResult(True)

    def invitation_url(self, token: str) -> str:
        return f'{self.base_url}/invite/{token}'

    def send_invitation(
        self,
        to_email: str,
        token: str,
        role: str,
        inviter_name: str,
        workspace_name: Optional[str] = None,
        expires_at: Optional[str] = None,
    ) -> EmailResult:
        url = self.invitation_url(token)
        role_label = role.replace('_', ' ').title()
        target = f'the "{workspace_name}" workspace' if workspace_name else 'PhotoSelect'
        subject = f'{inviter_name} invited you to join {target}'

        if self.development_mode:
            logger.info('Invitation link for %s: %s', to_email, url)

        body_text = (
            f'{inviter_name} has invited you to join {target} as {role_label}.\n\n'
            f'Accept the invitation: {url}\n'
        )
        if expires_at:
            body_text += f'\nThis invitation expires at {expires_at}.\n'

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>You're invited to {escape(target)}</h2>
            <p><strong>{escape(inviter_name)}</strong> has invited you to join as
               <strong>{escape(role_label)}</strong>.</p>
            <p><a href="{escape(url)}">Accept the invitation</a></p>
            {f'<p style="color: #666; font-size: 12px;">Expires {escape(expires_at)}</p>' if expires_at else ''}
        </body>
        </html>
        """
        return self.send(to_email, subject, body_html, body_text)

    def send_test_email(self, to_email: str) -> EmailResult:
        subject = 'PhotoSelect email configuration test'
        body_text = 'This is a test email from PhotoSelect. Email delivery is working.'
        body_html = f'<html><body><p>{body_text}</p></body></html>'
        return self.send(to_email, subject, body_html, body_text)

    def describe(self) -> dict:
        return {
            'development_mode': self.development_mode,
            'smtp_host': self.config.smtp_host,
            'from': self.config.from_email,
        }
