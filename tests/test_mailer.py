"""
Tests for the email service.
"""

import smtplib

import pytest

from photoselect.mailer import EmailConfig, EmailService


class RecordingSMTP:
    """Stands in for smtplib.SMTP and records what was sent."""

    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = user

    def sendmail(self, from_addr, to_addrs, message):
        RecordingSMTP.sent.append((self, from_addr, to_addrs, message))


@pytest.fixture
def smtp(monkeypatch):
    RecordingSMTP.sent = []
    monkeypatch.setattr(smtplib, 'SMTP', RecordingSMTP)
    return RecordingSMTP


class TestDevelopmentMode:

    def test_no_host_means_development_mode(self):
        service = EmailService(EmailConfig(smtp_host=None), 'http://localhost:3000')
        result = service.send_invitation('guest@example.com', 'abc', 'STAFF', 'Owner')
        assert result.success is True
        assert result.development_mode is True

    def test_invitation_url(self):
        service = EmailService(EmailConfig(smtp_host=None), 'https://photoselect.app/')
        assert service.invitation_url('abc') == 'https://photoselect.app/invite/abc'


class TestSMTPDelivery:

    def test_invitation_sent(self, smtp):
        config = EmailConfig(smtp_host='smtp.example.com', smtp_user='mailer', smtp_password='pw')
        service = EmailService(config, 'https://photoselect.app')

        result = service.send_invitation(
            'guest@example.com', 'tok123', 'BUSINESS_OWNER', 'Admin', workspace_name='Smith Wedding',
        )
        assert result.success is True
        assert result.development_mode is False

        server, from_addr, to_addrs, message = smtp.sent[0]
        assert server.started_tls is True
        assert server.logged_in == 'mailer'
        assert to_addrs == ['guest@example.com']
        assert 'https://photoselect.app/invite/tok123' in message
        assert 'Business Owner' in message

    def test_html_is_escaped(self, smtp):
        service = EmailService(EmailConfig(smtp_host='smtp.example.com'), 'https://photoselect.app')
        service.send_invitation('guest@example.com', 'tok', 'USER', '<script>x</script>')
        message = smtp.sent[0][3]
        assert '<strong><script>' not in message

    def test_failure_returned_not_raised(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError('refused')

        monkeypatch.setattr(smtplib, 'SMTP', refuse)
        service = EmailService(EmailConfig(smtp_host='smtp.example.com'), 'https://photoselect.app')
        result = service.send_test_email('someone@example.com')
        assert result.success is False
        assert 'refused' in result.error
