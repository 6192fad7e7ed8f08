"""Response helpers shared by the routers."""
from __future__ import annotations

from fastapi.responses import JSONResponse

from ledger.services.idempotency import IdempotentResult

REPLAYED_HEADER = "Idempotent-Replayed"


def idempotent_response(result: IdempotentResult) -> JSONResponse:
    """Send the stored status code with the body; flag replays in a header."""
    headers = {REPLAYED_HEADER: "true"} if result.replayed else None
    return JSONResponse(content=result.response, status_code=result.status_code, headers=headers)
