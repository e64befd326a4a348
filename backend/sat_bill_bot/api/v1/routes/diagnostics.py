from fastapi import APIRouter, Request

router = APIRouter(prefix="/diagnostics", tags=["Diagnostics"])


@router.get("/errors")
async def list_errors(request: Request) -> dict:
    entries = request.app.state.orchestrator.errors()
    return {"count": len(entries), "errors": [entry.to_dict() for entry in entries]}


@router.delete("/errors")
async def clear_errors(request: Request) -> dict:
    request.app.state.orchestrator.reset()
    return {"success": True}
