from __future__ import annotations

import calendar
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..schemas.invoice import InvoiceRecord, format_amount
from .errors import AggregatedValidationError

RFC_PATTERN = re.compile(r"^[A-ZÑ&]{3,4}(?P<date>[0-9]{6})[A-Z0-9]{3}$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")
CURRENCY_PATTERN = re.compile(r"^\d{1,3}(,\d{3})*(\.\d{2})?$")
QUANTITY_PATTERN = re.compile(r"^\d+(\.\d+)?$")
FORBIDDEN_PASSWORD_CHARS = re.compile(r"[<>'\"\\]")

MAX_CREDENTIAL_FILE_SIZE = 10 * 1024 * 1024
MIN_PASSWORD_LENGTH = 8
CERTIFICATE_EXTENSION = ".cer"
PRIVATE_KEY_EXTENSION = ".key"

REQUIRED_INVOICE_FIELDS = ("rfc", "codigoPostal", "regimenFiscal", "usoCFDI", "concepto")

# (field, message) checked on the first concept
CONCEPT_CURRENCY_FIELDS = (
    ("valor", "Invalid unit value"),
    ("iva", "Invalid VAT amount"),
    ("retIva", "Invalid VAT withheld"),
    ("retIsr", "Invalid ISR withheld"),
)


def _is_date(yymmdd: str) -> bool:
    year, month, day = int(yymmdd[:2]), int(yymmdd[2:4]), int(yymmdd[4:])
    if not 1 <= month <= 12:
        return False
    # Either century may apply; 29 Feb only needs one leap year
    return any(1 <= day <= calendar.monthrange(century + year, month)[1] for century in (1900, 2000))


def _as_text(value: Any) -> str:
    """Currency text as it would be typed into the portal"""
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if value < 0 or round(value, 2) != value:
        return str(value)
    return format_amount(value)


class PreflightValidator:
    """Structural checks run before touching the page. Never stops at the first problem."""

    def validate_rfc(self, rfc: str) -> bool:
        match = RFC_PATTERN.match(rfc or "")
        if not match:
            return False
        # The six digits are the YYMMDD registration or birth date
        return _is_date(match.group("date"))

    def validate_postal_code(self, postal_code: str) -> bool:
        return bool(POSTAL_CODE_PATTERN.match(postal_code or ""))

    def validate_currency(self, amount: str) -> bool:
        return bool(CURRENCY_PATTERN.match(amount))

    def validate_quantity(self, quantity: str) -> bool:
        plain = quantity.replace(",", "")
        if not QUANTITY_PATTERN.match(plain):
            return False
        return float(plain) > 0

    def validate_invoice(self, invoice: Union[InvoiceRecord, Mapping[str, Any]]) -> list[str]:
        if isinstance(invoice, InvoiceRecord):
            data: Mapping[str, Any] = invoice.model_dump(by_alias=True)
        else:
            data = invoice
        errors: list[str] = []

        if not self.validate_rfc(str(data.get("rfc") or "")):
            errors.append("Invalid RFC")

        if not self.validate_postal_code(str(data.get("codigoPostal") or "")):
            errors.append("Invalid postal code")

        for field in REQUIRED_INVOICE_FIELDS:
            value = data.get(field)
            if not value or not str(value).strip():
                errors.append(f"Field {field} is required")

        concepts = data.get("concepto") or []
        if not isinstance(concepts, (list, tuple)):
            errors.append("Invalid concept")
            return errors
        if not concepts:
            return errors

        concept = concepts[0]
        if not isinstance(concept, Mapping):
            errors.append("Invalid concept")
            return errors

        quantity = concept.get("cantidad")
        if quantity is not None and not self.validate_quantity(str(quantity)):
            errors.append("Invalid quantity")

        for field, message in CONCEPT_CURRENCY_FIELDS:
            value = concept.get(field)
            if value is not None and not self.validate_currency(_as_text(value)):
                errors.append(message)

        return errors

    def validate_credential_files(
        self, certificate_path: Optional[str], private_key_path: Optional[str]
    ) -> list[str]:
        errors: list[str] = []
        errors.extend(self._check_file(certificate_path, CERTIFICATE_EXTENSION, "Certificate"))
        errors.extend(self._check_file(private_key_path, PRIVATE_KEY_EXTENSION, "Private key"))
        return errors

    def _check_file(self, file_path: Optional[str], extension: str, label: str) -> list[str]:
        if not file_path:
            return [f"{label} file is required"]

        errors = []
        path = Path(file_path)
        if path.suffix.lower() != extension:
            errors.append(f"{label} file must have the {extension} extension")
        if path.is_file() and path.stat().st_size > MAX_CREDENTIAL_FILE_SIZE:
            errors.append(f"{label} file is too large")
        return errors

    def validate_password(self, password: Optional[str]) -> list[str]:
        errors: list[str] = []

        if not password:
            errors.append("Password is required")
        elif len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        if password and FORBIDDEN_PASSWORD_CHARS.search(password):
            errors.append("Password contains forbidden characters")

        return errors

    def collect(
        self,
        certificate_path: Optional[str],
        private_key_path: Optional[str],
        password: Optional[str],
        invoice: Union[InvoiceRecord, Mapping[str, Any]],
    ) -> list[str]:
        return [
            *self.validate_credential_files(certificate_path, private_key_path),
            *self.validate_password(password),
            *self.validate_invoice(invoice),
        ]

    def ensure_valid(
        self,
        certificate_path: Optional[str],
        private_key_path: Optional[str],
        password: Optional[str],
        invoice: Union[InvoiceRecord, Mapping[str, Any]],
    ) -> None:
        errors = self.collect(certificate_path, private_key_path, password, invoice)
        if errors:
            raise AggregatedValidationError(errors)
