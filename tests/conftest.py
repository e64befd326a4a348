# tests/conftest.py
from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sat_bill_bot.core.config import ConfigurationProvider, Settings
from sat_bill_bot.schemas.bot_config import BotConfiguration, Retries
from sat_bill_bot.service import form_engine
from sat_bill_bot.service.retry_orchestrator import RetryOrchestrator

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-screenshot"

SIGN_IN_SELECTORS = ["#buttonFiel", "#fileCertificate", "#filePrivateKey", "#privateKeyPassword", "#submit"]

FORM_SELECTORS = [
    "#tituloFI",
    '.btnNewItem[entidad="1350001"]',
    ".btnAddItem[entidad='1350001']",
    '.btn-sellar-factura[tabindex="2002"]',
    "#formCFD",
    "#btnValidaOSCP",
    "#btnFirmar",
]

FIELD_KEYS = [
    "rfc",
    "codigoPostal",
    "regimenFiscal",
    "usoFactura",
    "concepto_descripcion",
    "concepto_productoServicio",
    "concepto_unidadDeMedida",
    "concepto_cantidad",
    "concepto_valorUnitario",
    "concepto_noIdentificacion",
    "concepto_impuesto",
    "concepto_no_impuesto",
    "concepto_cobradoIVA",
    "concepto_retencionIVA",
    "concepto_retencionISR",
]

REFERENCE_TOTALS = {
    "subtotal": "7,200.00",
    "impuestos_trasladados_total": "576.00",
    "impuestos_retenidos_total": "473.76",
    "total": "7,302.24",
}


class FakeElement:
    def __init__(self, page: "FakePage", selector: str, value: str = ""):
        self.page = page
        self.selector = selector
        self.value = value
        self.checked = False
        self.focused = False
        self.keys: List[str] = []
        self.files: List[str] = []
        self.selected: Optional[str] = None
        self.clicks = 0
        self.change_events = 0

    async def focus(self):
        self.focused = True

    async def type(self, text: str):
        self.value += text
        self.page.calls.append(("type", self.selector, text))

    async def press(self, key: str):
        self.keys.append(key)

    async def click(self):
        self.clicks += 1
        self.page.calls.append(("click", self.selector, None))

    async def select_option(self, value: str):
        self.selected = value
        self.page.calls.append(("select", self.selector, value))

    async def set_input_files(self, path: str):
        self.files.append(path)
        self.page.calls.append(("upload", self.selector, path))


class FakeContext:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class FakePage:
    """Just enough of playwright's async Page for the form engine"""

    def __init__(self, selectors: Optional[List[str]] = None):
        self.elements: Dict[str, FakeElement] = {}
        for selector in selectors or []:
            self.add(selector)
        self.calls: List[tuple] = []
        self.visited: List[str] = []
        # selector -> number of wait_for_selector calls that still fail
        self.failures: Dict[str, int] = {}
        self.wait_calls: Dict[str, int] = {}
        self.menu_hidden_polls = 0
        self.menu_polls = 0
        self.page_load_waits = 0
        self.default_timeout = None
        self.navigation_timeout = None
        self.context = FakeContext()

    def add(self, selector: str, value: str = "") -> FakeElement:
        element = FakeElement(self, selector, value)
        self.elements[selector] = element
        return element

    def field(self, key: str) -> FakeElement:
        return self.elements[form_engine.id_prefix_selector(key)]

    def clicked(self, selector: str) -> bool:
        return ("click", selector, None) in self.calls

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout):
        self.navigation_timeout = timeout

    async def goto(self, url: str, wait_until: str = "load"):
        self.visited.append(url)

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: Any = None):
        self.wait_calls[selector] = self.wait_calls.get(selector, 0) + 1
        if self.failures.get(selector, 0) > 0:
            self.failures[selector] -= 1
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        if selector not in self.elements:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return self.elements[selector]

    async def eval_on_selector(self, selector: str, expression: str):
        element = self.elements.get(selector)
        if element is None:
            raise PlaywrightError(f"failed to find element matching selector \"{selector}\"")
        if expression == form_engine.CLEAR_INPUT_SCRIPT:
            element.value = ""
            element.change_events += 1
        elif expression == form_engine.DISPATCH_CHANGE_SCRIPT:
            element.change_events += 1
        elif expression == form_engine.CLICK_SCRIPT:
            element.checked = not element.checked
            element.clicks += 1
        elif expression == form_engine.READ_VALUE_SCRIPT:
            return element.value
        return None

    async def evaluate(self, expression: str, arg: Any = None):
        if expression == form_engine.MENU_VISIBLE_SCRIPT:
            self.menu_polls += 1
            return self.menu_polls > self.menu_hidden_polls
        return None

    async def wait_for_function(self, expression: str, timeout: Any = None):
        self.page_load_waits += 1

    async def screenshot(self, full_page: bool = False):
        return PNG_BYTES


def portal_page(totals: Optional[Dict[str, str]] = None) -> FakePage:
    """A page carrying every element of the SAT invoice flow"""
    page = FakePage(SIGN_IN_SELECTORS + FORM_SELECTORS)
    for key in FIELD_KEYS:
        page.add(form_engine.id_prefix_selector(key))
    for key, value in (totals or REFERENCE_TOTALS).items():
        page.add(form_engine.id_prefix_selector(key), value)
    return page


class FakeBrowserProvider:
    def __init__(self, page: Optional[FakePage] = None):
        self.page = page or portal_page()
        self.closed = False

    async def create_page(self):
        return self.page

    async def close(self):
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def fast_autocomplete(monkeypatch):
    monkeypatch.setattr(form_engine, "AUTOCOMPLETE_POLL_INTERVAL", 0)


@pytest.fixture
def bot_config():
    return BotConfiguration(retries=Retries(max_attempts=3, base_delay_ms=1))


@pytest.fixture
def config_provider(bot_config):
    return ConfigurationProvider(bot_config)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def orchestrator(config_provider, sleep):
    return RetryOrchestrator(config_provider, sleep=sleep)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        base_delay_ms=1,
        max_attempts=2,
        credentials_file=tmp_path / "contabilizate-config.json",
    )


@pytest.fixture
def credential_files(tmp_path):
    certificate = tmp_path / "efirma.cer"
    private_key = tmp_path / "efirma.key"
    certificate.write_bytes(b"certificate-bytes")
    private_key.write_bytes(b"private-key-bytes")
    return certificate, private_key


@pytest.fixture
def invoice_payload():
    return {
        "rfc": "GODE561231GR8",
        "razonSocial": "Empresa Demo",
        "codigoPostal": "22000",
        "regimenFiscal": "612",
        "usoCFDI": "G03",
        "concepto": [
            {
                "descripcion": "Servicios de consultoria",
                "producto": "80101500",
                "unidad": "E48",
                "cantidad": 1,
                "valor": 7200,
                "id": 1,
                "impuesto": "02",
                "iva": 576,
                "retIva": 383.76,
                "retIsr": 90,
            }
        ],
        "total": 7302.24,
        "subtotal": 7200,
        "impuestosTrasladados": 576,
        "impuestosRetenidos": 473.76,
    }
