"""SMTP delivery with an optional reusable authenticated session."""

from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage
from threading import Lock
from typing import Callable

import structlog

from ..config import MailConfig
from ..errors import NotificationError

SMTPFactory = Callable[..., smtplib.SMTP]


class SMTPTransport:
    """Own one SMTP connection with an explicit open/send/close lifecycle.

    With ``reuse_session`` the connection is opened on the first send (or by
    :meth:`open`) and reused afterwards; every send on it holds the lock.
    Without it each send dials, authenticates and quits on its own, so sends
    may run concurrently.
    """

    def __init__(
        self,
        config: MailConfig,
        logger: structlog.BoundLogger | None = None,
        smtp_factory: SMTPFactory | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("feedwatch.smtp")
        self._factory = smtp_factory or (smtplib.SMTP_SSL if config.use_ssl else smtplib.SMTP)
        self._session: smtplib.SMTP | None = None
        self._lock = Lock()

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def open(self) -> None:
        with self._lock:
            self._ensure_session()

    def send(self, message: EmailMessage, record_key: str = "") -> None:
        if not self.config.reuse_session:
            session = self._connect(record_key)
            try:
                self._send_on(session, message, record_key)
            finally:
                _quit_quietly(session)
            return
        with self._lock:
            session = self._ensure_session(record_key)
            try:
                self._send_on(session, message, record_key)
            except NotificationError:
                # a broken session is dropped so the next send re-dials
                if not _is_alive(session):
                    _quit_quietly(session)
                    self._session = None
                raise

    def close(self) -> None:
        with self._lock:
            if self._session is not None:
                _quit_quietly(self._session)
                self._session = None
                self.logger.debug("smtp_session_closed", host=self.config.host)

    def __enter__(self) -> "SMTPTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    def _ensure_session(self, record_key: str = "") -> smtplib.SMTP:
        if self._session is None:
            self._session = self._connect(record_key)
            self.logger.debug("smtp_session_opened", host=self.config.host, port=self.config.port)
        return self._session

    def _connect(self, record_key: str) -> smtplib.SMTP:
        try:
            session = self._factory(self.config.host, self.config.port, timeout=self.config.timeout)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(record_key, f"connect failed: {exc}") from exc
        try:
            session.ehlo()
            if self.config.starttls:
                session.starttls(context=ssl.create_default_context())
                session.ehlo()
            session.login(self.config.sender, self.config.resolved_password())
        except (smtplib.SMTPException, OSError) as exc:
            _quit_quietly(session)
            raise NotificationError(record_key, f"handshake failed: {exc}") from exc
        return session

    def _send_on(self, session: smtplib.SMTP, message: EmailMessage, record_key: str) -> None:
        try:
            refused = session.send_message(
                message, from_addr=self.config.sender, to_addrs=[self.config.recipient]
            )
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(record_key, f"send failed: {exc}") from exc
        if refused:
            raise NotificationError(record_key, f"recipient refused: {refused}")


def _is_alive(session: smtplib.SMTP) -> bool:
    try:
        status, _ = session.noop()
    except (smtplib.SMTPException, OSError):
        return False
    return status == 250


def _quit_quietly(session: smtplib.SMTP) -> None:
    try:
        session.quit()
    except (smtplib.SMTPException, OSError):
        session.close()


__all__ = ["SMTPTransport"]
