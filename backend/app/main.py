import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.config import settings
from backend.services.errors import ProcurementError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Procurement Core", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(ProcurementError)
async def procurement_error_handler(request: Request, exc: ProcurementError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
