from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def format_amount(value: float) -> str:
    """Render an amount the way the portal displays totals (e.g. 7,302.24)"""
    return f"{value:,.2f}"


class LineItem(BaseModel):
    """A single invoice concept"""
    model_config = ConfigDict(populate_by_name=True)

    descripcion: str
    producto: str
    unidad: str
    cantidad: float = Field(gt=0)
    valor: float = Field(ge=0)
    id: int
    impuesto: str = "02"
    iva: float = Field(ge=0)
    ret_iva: float = Field(ge=0, alias="retIva")
    ret_isr: float = Field(ge=0, alias="retIsr")


class InvoiceRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rfc: str
    razon_social: Optional[str] = Field(default=None, alias="razonSocial")
    codigo_postal: str = Field(alias="codigoPostal")
    regimen_fiscal: str = Field(alias="regimenFiscal")
    uso_cfdi: str = Field(alias="usoCFDI")
    concepto: list[LineItem] = Field(min_length=1)

    total: float = Field(ge=0)
    subtotal: float = Field(ge=0)
    impuestos_trasladados: float = Field(ge=0, alias="impuestosTrasladados")
    impuestos_retenidos: float = Field(ge=0, alias="impuestosRetenidos")

    def expected_totals(self) -> dict[str, str]:
        """Rendered total fields keyed by their form id prefix"""
        return {
            "subtotal": format_amount(self.subtotal),
            "impuestos_trasladados_total": format_amount(self.impuestos_trasladados),
            "impuestos_retenidos_total": format_amount(self.impuestos_retenidos),
            "total": format_amount(self.total),
        }


class CredentialBundle(BaseModel):
    """e.firma files and password. Only a successful sign-in proves them valid."""
    certificate_path: str
    private_key_path: str
    password: str


class StoredCredentials(BaseModel):
    """Persisted bill settings, keys as written to the settings file"""
    model_config = ConfigDict(populate_by_name=True)

    private_key: Optional[str] = Field(default=None, alias="privateKey")
    certificate: Optional[str] = None
    password: Optional[str] = None
    rfc: Optional[str] = None
