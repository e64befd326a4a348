from __future__ import annotations

import threading
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..schemas.bot_config import BotConfiguration, Retries, Timeouts, Urls


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SAT_BOT_", env_file=".env", extra="ignore")

    # Timeouts (ms)
    page_timeout_ms: int = 30000
    element_timeout_ms: int = 10000
    navigation_timeout_ms: int = 15000

    # Retry policy
    max_attempts: int = 3
    base_delay_ms: int = 1000

    portal_url: str = "https://portal.facturaelectronica.sat.gob.mx/"

    # Browser
    headless: bool = False
    cdp_url: Optional[str] = None
    viewport_width: int = 1080
    viewport_height: int = 1024

    credentials_file: Path = Path.home() / ".contabilizate-config.json"

    # Workflow steps
    preflight_enabled: bool = True
    submit_sign_in: bool = False
    fill_form_enabled: bool = False
    confirm_signature_enabled: bool = False
    stage_credentials: bool = False

    def bot_configuration(self) -> BotConfiguration:
        return BotConfiguration(
            timeouts=Timeouts(
                page=self.page_timeout_ms,
                element=self.element_timeout_ms,
                navigation=self.navigation_timeout_ms,
            ),
            retries=Retries(max_attempts=self.max_attempts, base_delay_ms=self.base_delay_ms),
            urls=Urls(portal=self.portal_url),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


class ConfigurationProvider:
    """Holds the canonical BotConfiguration of the process.

    Readers always get a deep copy. Updates are shallow merges that replace the
    canonical value in one assignment and are not validated.
    """

    def __init__(self, config: Optional[BotConfiguration] = None):
        self._config = config or BotConfiguration()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConfigurationProvider":
        return cls(settings.bot_configuration())

    def get(self) -> BotConfiguration:
        return self._config.model_copy(deep=True)

    def update(self, partial: Union[Mapping[str, Any], BotConfiguration]) -> None:
        if isinstance(partial, BotConfiguration):
            partial = {name: getattr(partial, name) for name in partial.model_fields_set}

        changes: dict[str, Any] = {}
        for key, value in partial.items():
            field = BotConfiguration.model_fields.get(key)
            section = field.annotation if field is not None else None
            if isinstance(value, Mapping) and isinstance(section, type) and issubclass(section, BaseModel):
                value = section.model_construct(**value)
            changes[key] = value

        with self._lock:
            self._config = self._config.model_copy(update=changes)
