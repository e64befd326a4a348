from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

from playwright.async_api import Page

from ..core.config import ConfigurationProvider, Settings
from ..schemas.bot_config import BotConfiguration
from ..schemas.invoice import CredentialBundle, InvoiceRecord
from ..utils.logging import setup_logger
from .browser_provider import BrowserProvider
from .errors import BillGenerationError, BillValidationError, TotalsMismatchError
from .form_engine import FormInteractionEngine
from .preflight_validator import PreflightValidator
from .retry_orchestrator import RetryOrchestrator
from .temp_resources import TempResourceSet

logger = setup_logger(__name__)

# Tax object code sent with every concept ("02": subject to tax)
CONCEPT_TAX_CODE = "02"


class BillGenerationWorkflow:
    """
    One invoice run on the SAT portal:
    sign in -> fill form -> verify totals -> confirm signature -> screenshot.

    Fill and confirm are switched on through settings. Temporary resources are
    released when the run ends, whatever the outcome.
    """

    def __init__(
        self,
        settings: Settings,
        config: ConfigurationProvider,
        orchestrator: RetryOrchestrator,
        validator: PreflightValidator,
    ):
        self.settings = settings
        self.config = config
        self.orchestrator = orchestrator
        self.validator = validator

    async def generate(self, page: Page, credentials: CredentialBundle, invoice: InvoiceRecord) -> bytes:
        """Run every step against ``page`` and return a full-page PNG"""
        resources = TempResourceSet(self.orchestrator)
        config = self.config.get()

        try:
            if self.settings.preflight_enabled:
                self.validator.ensure_valid(
                    credentials.certificate_path,
                    credentials.private_key_path,
                    credentials.password,
                    invoice,
                )

            certificate_path, private_key_path = self._register_credentials(credentials, resources)
            engine = FormInteractionEngine(page, config, self.orchestrator)

            logger.info("Signing in", extra={"rfc": invoice.rfc, "portal": config.urls.portal})
            await self.orchestrator.run(
                lambda: self._sign_in(engine, config, certificate_path, private_key_path, credentials.password),
                context={"step": "sign_in"},
                retries=config.retries,
            )

            if self.settings.fill_form_enabled:
                await self._fill_bill_form(engine, config, invoice)

            if self.settings.confirm_signature_enabled:
                await self._confirm_bill_signature(
                    engine, config, certificate_path, private_key_path, credentials.password
                )

            screenshot = await engine.screenshot()
            logger.info("Bill run finished", extra={"rfc": invoice.rfc, "screenshot_bytes": len(screenshot)})
            return screenshot

        except Exception as error:
            self.orchestrator.log_only(error, {"invoice": invoice.model_dump(by_alias=True)})
            if isinstance(error, BillValidationError):
                raise
            raise BillGenerationError(str(error)) from error

        finally:
            resources.cleanup()

    def _register_credentials(self, credentials: CredentialBundle, resources: TempResourceSet) -> tuple[str, str]:
        if not self.settings.stage_credentials:
            # The caller's own files end up registered, so cleanup deletes them
            logger.warning(
                "Credential files registered for cleanup without staging",
                extra={"certificate": credentials.certificate_path, "private_key": credentials.private_key_path},
            )
            resources.register(credentials.certificate_path, credentials.private_key_path)
            return credentials.certificate_path, credentials.private_key_path

        staging_dir = tempfile.mkdtemp(prefix="sat_efirma_")
        staged = []
        try:
            for source in (credentials.certificate_path, credentials.private_key_path):
                target = Path(staging_dir) / Path(source).name
                shutil.copy2(source, target)
                staged.append(str(target))
        finally:
            resources.register(*staged, staging_dir)
        return staged[0], staged[1]

    async def _sign_in(
        self,
        engine: FormInteractionEngine,
        config: BotConfiguration,
        certificate_path: str,
        private_key_path: str,
        password: str,
    ) -> None:
        selectors = config.selectors
        await engine.goto(config.urls.portal)
        await engine.click_element(selectors.login_button)
        await engine.set_file_input(selectors.certificate_input, certificate_path)
        await engine.set_file_input(selectors.private_key_input, private_key_path)
        await engine.set_text_input(selectors.password_input, password)
        if self.settings.submit_sign_in:
            await engine.click_element(selectors.submit_button)

    async def _fill_bill_form(
        self, engine: FormInteractionEngine, config: BotConfiguration, invoice: InvoiceRecord
    ) -> None:
        await engine.wait_for_element(config.selectors.title_element, visible=True)
        await engine.wait_for_page_load()

        await self._fill_recipient_data(engine, invoice)
        await self._add_bill_concept(engine, config, invoice)

        await self._verify_totals(engine, invoice)
        await engine.click_element(config.selectors.confirm_button)

    async def _fill_recipient_data(self, engine: FormInteractionEngine, invoice: InvoiceRecord) -> None:
        await engine.set_autocomplete_input("rfc", invoice.rfc)
        await engine.set_text_input('[id^="codigoPostal"]', invoice.codigo_postal)
        await engine.set_autocomplete_input("regimenFiscal", invoice.regimen_fiscal)
        await engine.set_autocomplete_input("usoFactura", invoice.uso_cfdi)

    async def _add_bill_concept(
        self, engine: FormInteractionEngine, config: BotConfiguration, invoice: InvoiceRecord
    ) -> None:
        # Only the first concept is captured
        concept = invoice.concepto[0]

        await engine.click_element(config.selectors.add_item_button)
        await engine.set_autocomplete_input("concepto_descripcion", concept.descripcion)
        await engine.set_autocomplete_input("concepto_productoServicio", concept.producto)
        await engine.set_autocomplete_input("concepto_unidadDeMedida", concept.unidad)

        await engine.set_text_input('[id^="concepto_cantidad"]', _plain(concept.cantidad))
        await engine.set_text_input('[id^="concepto_valorUnitario"]', _plain(concept.valor))
        await engine.set_text_input('[id^="concepto_noIdentificacion"]', str(concept.id))

        await engine.set_select_input("concepto_impuesto", CONCEPT_TAX_CODE)
        await engine.set_checkbox_input("concepto_no_impuesto")

        await engine.set_text_input('[id^="concepto_cobradoIVA"]', _plain(concept.iva))
        await engine.set_text_input('[id^="concepto_retencionIVA"]', _plain(concept.ret_iva))
        await engine.set_text_input('[id^="concepto_retencionISR"]', _plain(concept.ret_isr))

        await engine.click_element(config.selectors.save_item_button)

    async def _verify_totals(self, engine: FormInteractionEngine, invoice: InvoiceRecord) -> None:
        mismatches = {}
        for key, expected in invoice.expected_totals().items():
            if not await engine.check_result_input(key, expected):
                mismatches[key] = expected

        if mismatches:
            error = TotalsMismatchError(mismatches)
            self.orchestrator.log_only(error, {"expected": invoice.expected_totals()})
            raise error

        logger.info("Totals verified", extra={"totals": invoice.expected_totals()})

    async def _confirm_bill_signature(
        self,
        engine: FormInteractionEngine,
        config: BotConfiguration,
        certificate_path: str,
        private_key_path: str,
        password: str,
    ) -> None:
        selectors = config.selectors
        await engine.wait_for_element(selectors.signature_form, visible=True)
        await engine.wait_for_page_load()

        await engine.set_text_input(selectors.password_input, password)
        await engine.set_file_input(selectors.private_key_input, private_key_path)
        await engine.set_file_input(selectors.certificate_input, certificate_path)
        await engine.click_element(selectors.validate_oscp_button)

        await engine.wait_for_page_load()
        await engine.click_element(selectors.sign_button)


def _plain(value: float) -> str:
    """Number as typed into the form: no trailing .0 for whole values"""
    return str(int(value)) if float(value).is_integer() else str(value)


async def generate_bill(
    browser: BrowserProvider,
    workflow: BillGenerationWorkflow,
    credentials: CredentialBundle,
    invoice: InvoiceRecord,
) -> bytes:
    """Open a fresh page, run the workflow on it and close the page afterwards"""
    page = await browser.create_page()
    try:
        return await workflow.generate(page, credentials, invoice)
    finally:
        await page.context.close()
