"""Operator notifications: one message when a run completes, one when it aborts.

EmailNotifier delivers over SMTP when ACCESS_REMOVER_NOTIFICATION_EMAIL_ENABLED=true.
Otherwise ReportFileNotifier writes the rendered summary into the reports folder.
Delivery failures are logged and never raised: a failed notification must not break a run.
"""

import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

from access_remover.report_generator import build_subject, render_summary_html, render_summary_text

ERROR_SUBJECT = "Drive Email Cleanup - Process Error"


def _error_body(error):
    return (
        "An error occurred during the Drive email cleanup process:\n\n"
        f"{error}\n\n"
        "The process has been stopped. Check the execution logs for more details.\n\n"
        "The cursor has been kept: run 'resume' to continue, or 'stop' followed by 'start' to begin again."
    )


class Notifier(ABC):

    @abstractmethod
    def send_summary(self, summary) -> bool:
        ...

    @abstractmethod
    def send_error(self, error) -> bool:
        ...


class EmailNotifier(Notifier):
    """Sends notifications via SMTP."""

    def __init__(self, smtp_host, smtp_port, smtp_user, smtp_password, from_email, to_email, use_tls=True):
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._from_email = from_email
        self._to_email = to_email
        self._use_tls = use_tls

    def is_enabled(self):
        return bool(self._smtp_host and self._from_email and self._to_email)

    def _send(self, subject, text_content, html_content=None):
        if not self.is_enabled():
            logging.error("Email notification is not fully configured (host, sender and recipient are required).")
            return False
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self._from_email
            msg["To"] = self._to_email
            msg.attach(MIMEText(text_content, "plain"))
            if html_content:
                msg.attach(MIMEText(html_content, "html"))

            with smtplib.SMTP(self._smtp_host, self._smtp_port) as server:
                if self._use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self._smtp_user and self._smtp_password:
                    server.login(self._smtp_user, self._smtp_password)
                server.sendmail(self._from_email, [self._to_email], msg.as_string())

            logging.info(f"Notification '{subject}' sent to {self._to_email}")
            return True
        except Exception as e:
            logging.error(f"Failed to send notification email to {self._to_email}: {e}")
            return False

    def send_summary(self, summary):
        sent = self._send(build_subject(summary), render_summary_text(summary), render_summary_html(summary))
        if sent and summary.total_found_but_blocked > 0:
            logging.warning(f"{summary.total_found_but_blocked} files need manual review - check your email for direct links")
        return sent

    def send_error(self, error):
        return self._send(ERROR_SUBJECT, _error_body(error))


class ReportFileNotifier(Notifier):
    """Writes notifications to the reports folder and the log."""

    def __init__(self, reports_dir):
        self.reports_dir = Path(reports_dir)

    def _write(self, filename, content):
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            path = self.reports_dir / filename
            path.write_text(content, encoding='utf-8')
            logging.info(f"Notification written to {path}")
            return True
        except OSError as e:
            logging.error(f"Failed to write notification file {filename}: {e}")
            return False

    def send_summary(self, summary):
        logging.info(build_subject(summary))
        for line in render_summary_text(summary).splitlines():
            logging.info(line)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self._write(f"{timestamp}_cleanup_summary.html", render_summary_html(summary))

    def send_error(self, error):
        logging.critical(f"{ERROR_SUBJECT}: {error}")
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self._write(f"{timestamp}_cleanup_error.txt", _error_body(error))


def create_notifier(settings, acting_email=None):
    if settings.NOTIFICATION_EMAIL_ENABLED:
        return EmailNotifier(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            from_email=settings.NOTIFICATION_FROM or settings.SMTP_USER,
            to_email=settings.NOTIFICATION_TO or acting_email,
        )
    return ReportFileNotifier(settings.REPORTS_DIR)
