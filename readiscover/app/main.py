"""
main.py
-------
FastAPI app exposing the tutoring session endpoints:
POST /session/start, POST /session/answer, and /health for liveness checks.

Domain errors are rendered as {"error": "<message>"} with the status the error
class carries; tracebacks only go to the log.
"""
from __future__ import annotations
import logging
import sys
from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..config import settings
from ..errors import ReadiscoverError
from ..models import AnswerRequest, AnswerResponse, StartSessionRequest, StartSessionResponse
from ..service import SessionService
from .deps import get_service

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Readiscover API", version="1.0.0")


@app.exception_handler(ReadiscoverError)
async def readiscover_error_handler(request: Request, exc: ReadiscoverError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Malformed request body"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health(service: SessionService = Depends(get_service)):
    """Health check endpoint."""
    return {"status": "ok", "service": "readiscover-api", "sessions": len(service.registry)}


@app.post("/session/start", response_model=StartSessionResponse)
def start_session(req: StartSessionRequest, service: SessionService = Depends(get_service)):
    """
    Download and parse the paper's source, derive its concepts and open a
    tutoring session. Nothing is registered unless every step succeeds.
    """
    return service.start_session(req)


@app.post("/session/answer", response_model=AnswerResponse)
def answer(req: AnswerRequest, service: SessionService = Depends(get_service)):
    """Run one tutoring turn for an existing session."""
    return service.submit_answer(req)
