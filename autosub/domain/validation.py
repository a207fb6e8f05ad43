"""
Validation rule set.

Field predicates are total over ``str`` (empty input simply fails) and
return ``bool``.  The ``validate_*`` gate functions attach a message per
failing field and return a list of ``FieldError`` -- an empty list means
the reservation step may advance.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from .entities import CardDetails, DocumentFile, FieldError, Identity
from .enums import ClientType

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_POSTAL_RE = re.compile(r"^\d{5}$")


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


# ── Predicates ────────────────────────────────────────────────────────


def validate_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def validate_phone(phone: str) -> bool:
    return 10 <= len(_digits(phone)) <= 15


def validate_postal_code(code: str) -> bool:
    return bool(_POSTAL_RE.match(code or ""))


def validate_card_number(number: str) -> bool:
    """Luhn checksum over 13-19 digits."""
    digits = _digits(number)
    if not 13 <= len(digits) <= 19:
        return False

    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_expiry_date(expiry: str, today: Optional[date] = None) -> bool:
    """MMYY (separators ignored), not before the current month."""
    digits = _digits(expiry)
    if len(digits) != 4:
        return False

    month = int(digits[:2])
    year = 2000 + int(digits[2:])
    if not 1 <= month <= 12:
        return False

    today = today or date.today()
    return (year, month) >= (today.year, today.month)


def validate_cvc(cvc: str) -> bool:
    return 3 <= len(_digits(cvc)) <= 4


# ── Step gates ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DocumentRules:
    accepted_types: tuple[str, ...] = (
        "application/pdf",
        "image/jpeg",
        "image/png",
    )
    max_total_bytes: int = 500 * 1024 * 1024
    required_default: int = 3
    required_entreprise: int = 5

    def required_for(self, client_type: str) -> int:
        if client_type == ClientType.ENTREPRISE.value:
            return self.required_entreprise
        return self.required_default


def validate_identity(identity: Identity) -> list[FieldError]:
    errors: list[FieldError] = []

    if identity.client_type not in {c.value for c in ClientType}:
        errors.append(FieldError("client_type", "Please select a client type"))
    if not identity.last_name.strip():
        errors.append(FieldError("last_name", "Last name is required"))
    if not identity.first_name.strip():
        errors.append(FieldError("first_name", "First name is required"))

    if not identity.email.strip():
        errors.append(FieldError("email", "Email is required"))
    elif not validate_email(identity.email):
        errors.append(FieldError("email", "Invalid email format"))

    if not identity.phone.strip():
        errors.append(FieldError("phone", "Phone number is required"))
    elif not validate_phone(identity.phone):
        errors.append(FieldError("phone", "Invalid phone number"))

    if not identity.address.strip():
        errors.append(FieldError("address", "Address is required"))

    if not identity.postal_code.strip():
        errors.append(FieldError("postal_code", "Postal code is required"))
    elif not validate_postal_code(identity.postal_code):
        errors.append(
            FieldError("postal_code", "Invalid postal code (5 digits required)")
        )

    if (
        identity.client_type == ClientType.ENTREPRISE.value
        and not identity.company.strip()
    ):
        errors.append(FieldError("company", "Company name is required"))

    return errors


def validate_documents(
    files: Sequence[DocumentFile],
    client_type: str,
    rules: DocumentRules = DocumentRules(),
) -> list[FieldError]:
    errors: list[FieldError] = []
    required = rules.required_for(client_type)

    accepted = [f for f in files if f.content_type in rules.accepted_types]
    if len(accepted) < required:
        errors.append(
            FieldError(
                "documents",
                f"Please provide at least {required} required documents",
            )
        )

    if sum(f.size for f in files) > rules.max_total_bytes:
        max_mb = rules.max_total_bytes // (1024 * 1024)
        errors.append(
            FieldError(
                "documents",
                f"Total file size must not exceed {max_mb} MB",
            )
        )

    return errors


def validate_contract(accepted: bool) -> list[FieldError]:
    if accepted:
        return []
    return [FieldError("contract", "You must accept the terms and conditions")]


def validate_payment(
    card: CardDetails, today: Optional[date] = None
) -> list[FieldError]:
    errors: list[FieldError] = []

    if not card.number.strip():
        errors.append(FieldError("card_number", "Card number is required"))
    elif not validate_card_number(card.number):
        errors.append(FieldError("card_number", "Invalid card number"))

    if not card.holder_name.strip():
        errors.append(FieldError("card_name", "Card holder name is required"))

    if not card.expiry.strip():
        errors.append(FieldError("card_expiry", "Expiry date is required"))
    elif not validate_expiry_date(card.expiry, today):
        errors.append(FieldError("card_expiry", "Invalid expiry date"))

    if not card.cvc.strip():
        errors.append(FieldError("card_cvc", "CVC is required"))
    elif not validate_cvc(card.cvc):
        errors.append(FieldError("card_cvc", "Invalid CVC"))

    return errors
