"""
FastAPI application entrypoint.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import router, settings
from coach.errors import SessionStateError

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
app = FastAPI(title="Pitch Coach API", version="1.0.0")
app.include_router(router)

@app.exception_handler(SessionStateError)
async def session_state_error(request: Request, exc: SessionStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})

@app.get("/health")
def health() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Simple status payload.
    """
    return {"status": "ok"}
