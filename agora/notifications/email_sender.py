# agora/notifications/email_sender.py

# Outbound email: SMTP delivery behind a background queue.
# Delivery is fire-and-forget; failures are logged and never reach the caller.

import logging
import smtplib
import ssl
import threading
from email.mime.text import MIMEText
from queue import Empty, Full, Queue
from typing import Dict, List

logger = logging.getLogger(__name__)


class SmtpSender:
    def __init__(self, host="", port=0, username="", password="", from_addr="noreply@agora.local", timeout=20):
        self.host = host
        self.port = int(port or 0)
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config.get("SMTP_HOST", ""),
            port=config.get("SMTP_PORT", 0),
            username=config.get("SMTP_USER", ""),
            password=config.get("SMTP_PASS", ""),
            from_addr=config.get("MAIL_FROM", "noreply@agora.local"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.port)

    def _connect(self):
        # SSL on 465, STARTTLS everywhere else
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.ehlo()
            try:
                server.starttls(context=ssl.create_default_context())
            except smtplib.SMTPNotSupportedError:
                pass
        if self.username:
            server.login(self.username, self.password)
        return server

    def send(self, recipients: List[str], subject: str, body: str) -> None:
        if not recipients:
            return
        if not self.configured:
            # Development mode: no SMTP host, echo to the log instead
            logger.warning("DEV_EMAIL to=%d recipients subject=%r body_preview=%r",
                           len(recipients), subject, body[:256])
            return

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        # Community-wide mail goes out as Bcc so addresses are not disclosed
        msg["To"] = self.from_addr
        with self._connect() as server:
            server.sendmail(self.from_addr, recipients, msg.as_string())
        logger.info("Email %r sent to %d recipients", subject, len(recipients))


class QueuedSender:
    """Hands messages to a daemon worker so request threads never wait on SMTP."""

    def __init__(self, inner, max_queue_size=1000):
        self.inner = inner
        self.queue: Queue = Queue(maxsize=max_queue_size)
        self.metrics = {"queued": 0, "sent": 0, "failed": 0, "dropped": 0}
        self._lock = threading.Lock()
        self._worker = None
        self.running = False

    def start(self):
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self.running = True
            self._worker = threading.Thread(target=self._process_queue, name="mail-queue", daemon=True)
            self._worker.start()

    def _count(self, name):
        with self._lock:
            self.metrics[name] += 1

    def send(self, recipients: List[str], subject: str, body: str) -> None:
        self.start()
        try:
            self.queue.put_nowait((list(recipients), subject, body))
            self._count("queued")
        except Full:
            logger.warning("Mail queue full - dropping %r", subject)
            self._count("dropped")

    def _deliver(self, message):
        recipients, subject, body = message
        try:
            self.inner.send(recipients, subject, body)
            self._count("sent")
        except Exception as e:
            self._count("failed")
            logger.error("Email %r failed: %s", subject, e)

    def _process_queue(self):
        while self.running:
            try:
                message = self.queue.get(timeout=0.5)
            except Empty:
                continue
            self._deliver(message)
            self.queue.task_done()

    def flush(self):
        """Deliver everything still queued on the calling thread."""
        while True:
            try:
                message = self.queue.get_nowait()
            except Empty:
                return
            self._deliver(message)
            self.queue.task_done()

    def shutdown(self, timeout=5.0):
        self.running = False
        if self._worker is not None:
            self._worker.join(timeout=timeout)
        self.flush()

    def get_metrics(self) -> Dict:
        with self._lock:
            metrics = dict(self.metrics)
        metrics["queue_size"] = self.queue.qsize()
        return metrics
