"""Email transports — the outbound side of the dispatcher."""

from __future__ import annotations

import abc
import asyncio
import smtplib
import ssl
from email.message import EmailMessage as MimeMessage
from email.utils import formatdate, make_msgid

import structlog

from jobalert.alerting.types import EmailMessage, TransportResult
from jobalert.core.config import SmtpConfig

logger = structlog.get_logger(__name__)


class Transport(abc.ABC):
    """Base class for message delivery transports."""

    @abc.abstractmethod
    async def send(self, message: EmailMessage) -> TransportResult:
        """Deliver *message*. Failures are returned, not raised."""

    @abc.abstractmethod
    async def verify(self) -> bool:
        """Connectivity probe. Returns True if the server is reachable."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources."""


def smtp_status_code(exc: BaseException) -> int:
    """Map an SMTP/socket exception onto an HTTP-like status code.

    401 auth, 429 throttled, 503 unreachable, 400 bad address, 500 otherwise.
    """
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return 401
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return 400
    if isinstance(exc, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected)):
        return 503
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return 503
    if isinstance(exc, smtplib.SMTPResponseException):
        if exc.smtp_code == 421:
            return 503
        if exc.smtp_code in (450, 451, 452):
            return 429

    msg = str(exc).lower()
    if "auth" in msg or "credentials" in msg:
        return 401
    if "rate" in msg or "too many" in msg:
        return 429
    if "econnrefused" in msg or "timeout" in msg or "network" in msg:
        return 503
    if "recipient" in msg or "address" in msg:
        return 400
    return 500


class SmtpTransport(Transport):
    """Delivers email over SMTP.

    smtplib is blocking, so each send runs in a worker thread with its own
    connection; nothing is shared between concurrent sends.
    """

    def __init__(self, config: SmtpConfig) -> None:
        self._host = config.host
        self._port = config.port
        self._secure = config.secure
        self._starttls = config.starttls
        self._username = config.username
        self._password = config.password.get_secret_value()
        self._timeout = config.timeout_secs

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self._secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self._host, self._port, timeout=self._timeout, context=context,
            )
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        try:
            if self._starttls and not self._secure:
                server.starttls(context=context)
            if self._username and self._password:
                server.login(self._username, self._password)
        except BaseException:
            server.close()
            raise
        return server

    def _build(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = message.from_email
        mime["To"] = ", ".join(message.to)
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        if message.reply_to:
            mime["Reply-To"] = message.reply_to
        mime["Subject"] = message.subject
        mime["Date"] = formatdate(localtime=False)
        domain = message.from_email.rpartition("@")[2] or None
        mime["Message-ID"] = make_msgid(domain=domain)

        if message.text is not None:
            mime.set_content(message.text)
            if message.html is not None:
                mime.add_alternative(message.html, subtype="html")
        elif message.html is not None:
            mime.set_content(message.html, subtype="html")
        else:
            mime.set_content("")
        return mime

    def _send_blocking(self, message: EmailMessage) -> str:
        mime = self._build(message)
        recipients = [*message.to, *message.cc, *message.bcc]
        with self._connect() as server:
            server.send_message(mime, from_addr=message.from_email, to_addrs=recipients)
        return str(mime["Message-ID"])

    async def send(self, message: EmailMessage) -> TransportResult:
        try:
            message_id = await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError) as exc:
            status = smtp_status_code(exc)
            logger.warning(
                "smtp_send_failed",
                host=self._host,
                status_code=status,
                error=str(exc),
            )
            return TransportResult.failure(str(exc) or type(exc).__name__, status)
        return TransportResult.success(message_id)

    def _verify_blocking(self) -> None:
        with self._connect() as server:
            server.noop()

    async def verify(self) -> bool:
        try:
            await asyncio.to_thread(self._verify_blocking)
            return True
        except (smtplib.SMTPException, OSError):
            logger.exception("smtp_verify_failed", host=self._host, port=self._port)
            return False

    async def close(self) -> None:
        # Connections are per-send; nothing is held open.
        return None
