"""Outbound mail delivery for confirmation messages."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from ..errors import NotifierUnavailable

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Sends a message and names the address it is sent from."""

    def send(self, to: str, sender: str, subject: str, body: str) -> None: ...

    def sender_alias(self) -> str: ...


class SmtpNotifier:
    """Deliver HTML mail through an SMTP relay, one connection per message."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        user: str = "",
        password: str = "",
        sender_alias: str,
        use_tls: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender_alias = sender_alias
        self._use_tls = use_tls
        self._timeout = timeout

    def sender_alias(self) -> str:
        return self._sender_alias

    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        """Send ``body`` as an HTML message, raising ``NotifierUnavailable`` on failure."""
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body, subtype="html")

        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._user and self._password:
                    server.login(self._user, self._password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("mail delivery to %s via %s:%s failed: %s", to, self._host, self._port, exc)
            raise NotifierUnavailable(f"mail delivery failed: {exc}", to=to) from exc
        logger.info("mail %r delivered to %s", subject, to)
