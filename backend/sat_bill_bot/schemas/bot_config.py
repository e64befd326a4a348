from __future__ import annotations

from pydantic import BaseModel, Field


class Timeouts(BaseModel):
    """Timeouts in milliseconds"""
    page: int = Field(default=30000, gt=0)
    element: int = Field(default=10000, gt=0)
    navigation: int = Field(default=15000, gt=0)


class Retries(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=1000, gt=0)


class Urls(BaseModel):
    portal: str = "https://portal.facturaelectronica.sat.gob.mx/"


class Selectors(BaseModel):
    """CSS selectors of the SAT invoice portal"""
    login_button: str = "#buttonFiel"
    certificate_input: str = "#fileCertificate"
    private_key_input: str = "#filePrivateKey"
    password_input: str = "#privateKeyPassword"
    submit_button: str = "#submit"
    title_element: str = "#tituloFI"
    add_item_button: str = '.btnNewItem[entidad="1350001"]'
    save_item_button: str = ".btnAddItem[entidad='1350001']"
    confirm_button: str = '.btn-sellar-factura[tabindex="2002"]'
    signature_form: str = "#formCFD"
    validate_oscp_button: str = "#btnValidaOSCP"
    sign_button: str = "#btnFirmar"
    autocomplete_menu: str = ".ui-menu.ui-widget.ui-widget-content.ui-autocomplete.ui-front"


class BotConfiguration(BaseModel):
    """Snapshot of everything the page engine needs to drive the portal"""
    timeouts: Timeouts = Field(default_factory=Timeouts)
    retries: Retries = Field(default_factory=Retries)
    urls: Urls = Field(default_factory=Urls)
    selectors: Selectors = Field(default_factory=Selectors)
