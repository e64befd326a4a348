from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..schemas.invoice import CredentialBundle, StoredCredentials
from ..utils.logging import setup_logger
from .errors import MissingCredentialError

logger = setup_logger(__name__)


class CredentialStore:
    """Bill settings (e.firma paths, password, RFC) kept in a JSON file"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> StoredCredentials:
        if not self.path.exists():
            return StoredCredentials()
        try:
            with self.path.open("r", encoding="utf-8") as file:
                return StoredCredentials.model_validate(json.load(file))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable settings file", extra={"path": str(self.path), "error": str(e)})
            return StoredCredentials()

    def save(self, credentials: StoredCredentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as file:
            json.dump(credentials.model_dump(by_alias=True, exclude_none=True), file, indent=2)
            file.write("\n")

    def update(
        self,
        private_key: Optional[str] = None,
        certificate: Optional[str] = None,
        password: Optional[str] = None,
        rfc: Optional[str] = None,
    ) -> StoredCredentials:
        """Merge the non-empty values into the stored settings"""
        changes = {
            "private_key": private_key,
            "certificate": certificate,
            "password": password,
            "rfc": rfc,
        }
        merged = self.load().model_copy(update={key: value for key, value in changes.items() if value})
        self.save(merged)
        logger.info("Bill settings saved", extra={"path": str(self.path), "fields": [k for k, v in changes.items() if v]})
        return merged

    def bundle(self) -> CredentialBundle:
        stored = self.load()
        missing = [
            name
            for name, value in (
                ("certificate", stored.certificate),
                ("privateKey", stored.private_key),
                ("password", stored.password),
            )
            if not value
        ]
        if missing:
            raise MissingCredentialError(missing)
        return CredentialBundle(
            certificate_path=stored.certificate,
            private_key_path=stored.private_key,
            password=stored.password,
        )
