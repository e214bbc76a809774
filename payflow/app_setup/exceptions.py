"""
Gestionnaires d'exceptions utilisés par la factory.
- HTTPException: corps JSON {"detail": ...} standard.
- PaymentError non convertie par une vue: même forme, code porté par l'erreur.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from payflow.payments.errors import PaymentError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def json_http_errors(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(PaymentError)
    async def json_payment_errors(request: Request, exc: PaymentError):
        logger.warning("payment error path=%s status=%s detail=%s", request.url.path, exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
