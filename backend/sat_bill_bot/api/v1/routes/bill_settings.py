"""
FastAPI Routes for the stored bill settings (e.firma paths, password, RFC)
"""

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from ....utils.logging import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/config", tags=["Configuration"])


class BillSettingsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    private_key: Optional[str] = Field(default=None, alias="privateKey", description="The private key file path")
    certificate: Optional[str] = Field(default=None, description="The certificate file path")
    password: Optional[str] = Field(default=None, description="The password")
    rfc: Optional[str] = Field(default=None, description="The bill's RFC")


@router.put("/bill-settings")
async def update_bill_settings(request: Request, payload: BillSettingsRequest) -> dict:
    """Merge the provided values into the stored settings"""
    stored = request.app.state.credential_store.update(
        private_key=payload.private_key,
        certificate=payload.certificate,
        password=payload.password,
        rfc=payload.rfc,
    )
    return {
        "success": True,
        "message": f"Configuration saved successfully! {stored.rfc or ''}".strip(),
    }
