"""SMTP relay for form submissions."""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import List, Optional

from jinja2 import Template

from .config import Settings
from .forms import ApplicationSubmission, WaitlistSubmission

logger = logging.getLogger(__name__)

WAITLIST_TEMPLATE = """New waitlist signup
Time: {{ time }}
Name: {{ s.firstName }}
Email: {{ s.email }}
Experience: {{ s.experience }}
Hype: {{ s.hype }}
Platforms: {{ s.platform|join(', ') }}
Early Access: {{ 'Yes' if s.earlyAccess else 'No' }}
Consent: {{ 'Yes' if s.consent else 'No' }}
IP: {{ s.ip or '' }}
UA: {{ s.userAgent or '' }}"""

APPLICATION_TEMPLATE = """New job application
Time: {{ time }}
Name: {{ s.fullName }}
Email: {{ s.email }}
Position: {{ s.jobPosition }}
Location: {{ s.location }}
Work Auth: {{ s.workAuth }}
Flagship URL: {{ s.flagshipUrl }}
Flagship Summary: {{ s.flagshipSummary }}
Motivation: {{ s.motivation }}
Links:
  GitHub: {{ s.linkGithub or '' }}
  Portfolio: {{ s.linkPortfolio or '' }}
  LinkedIn: {{ s.linkLinkedIn or '' }}
  Reel: {{ s.linkReel or '' }}
Optional:
  Start Date: {{ s.startDate or '' }}
  Referral: {{ s.referral or '' }}
Conditional:
  Engineering Work: {{ s.engineeringWork or '' }}
  Engineering Stack: {{ s.engineeringStack or '' }}
  Art Reel: {{ s.artReel or '' }}
  Art Engines: {{ s.artEngines or '' }}
  Art Credits: {{ s.artCredits or '' }}
  Ops Launch: {{ s.opsLaunch or '' }}
IP: {{ s.ip or '' }}
UA: {{ s.userAgent or '' }}"""


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def waitlist_message(s: WaitlistSubmission):
    subject = f"[Waitlist] Afro Japan — {s.firstName or 'Guest'} ({s.experience})"
    return subject, Template(WAITLIST_TEMPLATE).render(s=s, time=_now())


def application_message(s: ApplicationSubmission):
    subject = f"[Application] {s.jobPosition} — {s.fullName}"
    return subject, Template(APPLICATION_TEMPLATE).render(s=s, time=_now())


class SmtpMailer:
    def __init__(self, host: str, port: int, user: str, password: str, sender: str, recipient: str, timeout: float = 15.0):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.recipient = recipient
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["SmtpMailer"]:
        if not settings.email_enabled:
            return None
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_pass,
            sender=settings.from_email,
            recipient=settings.to_email,
        )

    def send(self, subject: str, text: str, attachments: Optional[List[Attachment]] = None, reply_to: Optional[str] = None) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = self.recipient
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(text)
        for a in attachments or []:
            maintype, _, subtype = (a.content_type or "application/octet-stream").partition("/")
            msg.add_attachment(a.content, maintype=maintype, subtype=subtype or "octet-stream", filename=a.filename)

        # Port 465 is implicit TLS; anything else upgrades with STARTTLS.
        if self.port == 465:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with smtp:
            if self.port != 465:
                smtp.starttls()
            smtp.login(self.user, self.password)
            smtp.send_message(msg)
        logger.info("Sent mail %r to %s", subject, self.recipient)
