"""Validation schemas for the waitlist and job application forms."""
from __future__ import annotations

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError, field_validator

from .utils import normalize_url_if_present, sanitize_text

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)

EMAIL_MESSAGE = "Enter a valid email like name@example.com"
URL_MESSAGE = "Enter a complete URL including https://"


def _email(value: str) -> str:
    value = (value or "").strip()
    if not EMAIL_RE.match(value):
        raise ValueError(EMAIL_MESSAGE)
    return value


def _required(value, message: str) -> str:
    text = sanitize_text(value)
    if not text:
        raise ValueError(message)
    return text


def _optional_url(value) -> Optional[str]:
    value = normalize_url_if_present(value)
    if value is None:
        return None
    if not isinstance(value, str) or not URL_RE.match(value):
        raise ValueError(URL_MESSAGE)
    return value


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    return sanitize_text(value)


class WaitlistSubmission(BaseModel):
    firstName: str = ""
    email: str
    experience: str
    hype: str = ""
    platform: List[str] = []
    earlyAccess: bool = False
    consent: bool
    userAgent: Optional[str] = None
    ip: Optional[str] = None

    @field_validator("firstName", mode="before")
    @classmethod
    def _first_name(cls, v):
        return sanitize_text(v)

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, v):
        return _email(v if isinstance(v, str) else "")

    @field_validator("experience", mode="before")
    @classmethod
    def _experience(cls, v):
        return _required(v, "Select how you want to experience Afro Japan")

    @field_validator("hype", mode="before")
    @classmethod
    def _hype(cls, v):
        text = sanitize_text(v)
        if len(text) > 500:
            raise ValueError("Keep it under 500 characters")
        return text


class ApplicationSubmission(BaseModel):
    jobPosition: str
    fullName: str
    email: str
    location: str
    flagshipUrl: str
    flagshipSummary: str
    motivation: str
    workAuth: str
    linkGithub: Optional[str] = None
    linkPortfolio: Optional[str] = None
    linkLinkedIn: Optional[str] = None
    linkReel: Optional[str] = None
    startDate: Optional[str] = None
    referral: Optional[str] = None
    engineeringWork: Optional[str] = None
    engineeringStack: Optional[str] = None
    artReel: Optional[str] = None
    artEngines: Optional[str] = None
    artCredits: Optional[str] = None
    opsLaunch: Optional[str] = None
    userAgent: Optional[str] = None
    ip: Optional[str] = None

    @field_validator("jobPosition", mode="before")
    @classmethod
    def _position(cls, v):
        return _required(v, "Select a job position")

    @field_validator("fullName", mode="before")
    @classmethod
    def _name(cls, v):
        return _required(v, "Enter your full name")

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, v):
        return _email(v if isinstance(v, str) else "")

    @field_validator("location", mode="before")
    @classmethod
    def _location(cls, v):
        return _required(v, "Enter your city, country, and time zone")

    @field_validator("flagshipUrl", mode="before")
    @classmethod
    def _flagship(cls, v):
        url = _optional_url(v)
        if url is None:
            raise ValueError(URL_MESSAGE)
        return url

    @field_validator("flagshipSummary", mode="before")
    @classmethod
    def _summary(cls, v):
        text = _required(v, "Add 1–3 sentences about what you built")
        if len(text) > 1000:
            raise ValueError("Keep it under 1000 characters")
        return text

    @field_validator("motivation", mode="before")
    @classmethod
    def _motivation(cls, v):
        text = _required(v, "Tell us why Camp of Creatives in 1–3 sentences")
        if len(text) > 1000:
            raise ValueError("Keep it under 1000 characters")
        return text

    @field_validator("workAuth", mode="before")
    @classmethod
    def _work_auth(cls, v):
        return _required(v, "Select your work authorization status")

    @field_validator("linkGithub", "linkPortfolio", "linkLinkedIn", "linkReel", "engineeringWork", "artReel", mode="before")
    @classmethod
    def _links(cls, v):
        return _optional_url(v)

    @field_validator("startDate", "referral", "engineeringStack", "artEngines", "artCredits", "opsLaunch", mode="before")
    @classmethod
    def _texts(cls, v):
        return _optional_text(v)


def field_errors(error: ValidationError) -> Dict[str, List[str]]:
    """Flatten a ValidationError into ``{field: [messages]}``."""
    out: Dict[str, List[str]] = {}
    for err in error.errors():
        loc = err.get("loc") or ("_",)
        name = str(loc[0])
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.setdefault(name, []).append(msg)
    return out
