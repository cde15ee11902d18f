"""Local input checks run before anything is sent to the server."""

from __future__ import annotations

import re
from typing import Any

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
MIN_PASSWORD_LENGTH = 6


def validate_login(email: str | None, password: str | None) -> list[str]:
    errors: list[str] = []
    if not email or not email.strip():
        errors.append("Email is required")
    elif not EMAIL_RE.match(email.strip()):
        errors.append("Invalid email format")

    if not password:
        errors.append("Password is required")
    return errors


def validate_registration(form: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    if not (form.get("name") or "").strip():
        errors.append("Name is required")

    email = form.get("email")
    if not email or not email.strip():
        errors.append("Email is required")
    elif not EMAIL_RE.match(email.strip()):
        errors.append("Invalid email format")

    password = form.get("password") or ""
    if not password:
        errors.append("Password is required")
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    phone = (form.get("phone") or "").replace(" ", "")
    if not phone:
        errors.append("Phone number is required")
    elif not PHONE_RE.match(phone):
        errors.append("Invalid phone number")

    if not form.get("vehicle"):
        errors.append("Vehicle details are required")
    return errors
