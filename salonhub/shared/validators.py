"""Shared validation utilities"""

import re
from typing import Optional

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")
COUNTRY_CODE_PATTERN = re.compile(r"^\+\d{1,4}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_e164_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate an international phone number in E.164 format.

    Spaces, dashes and parentheses are stripped before matching, so
    "+91 98765-43210" normalizes to "+919876543210".

    Raises:
        ValueError: If the number is not E.164
    """
    if not phone:
        return phone

    normalized = re.sub(r"[\s\-()]", "", phone)
    if not E164_PATTERN.match(normalized):
        raise ValueError("Phone number must be in E.164 format (e.g. +919876543210)")
    return normalized


def validate_local_phone(contact_no: str) -> str:
    """Validate a 10 digit national number without country code"""
    if not re.fullmatch(r"\d{10}", contact_no or ""):
        raise ValueError("Contact number must be 10 digits")
    return contact_no


def validate_country_code(country_code: str) -> str:
    if not COUNTRY_CODE_PATTERN.match(country_code or ""):
        raise ValueError("Country code must look like +91")
    return country_code


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")

    return email
