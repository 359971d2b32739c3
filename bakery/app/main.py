import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from bakery.app.api.v1.router import router as v1_router
from bakery.app.core.config import LOG_LEVEL
from bakery.app.core.log import configure_logging
from bakery.services.errors import InternalFailure, OrderEngineError

configure_logging(LOG_LEVEL)
logger = structlog.get_logger()

app = FastAPI(title="BISKOTO ORDERS", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(OrderEngineError)
async def order_engine_error_handler(request: Request, exc: OrderEngineError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    # raw store errors never reach the client
    logger.error("store_failure", path=request.url.path, error=str(exc))
    failure = InternalFailure()
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("unexpected_failure", path=request.url.path, error=repr(exc))
    failure = InternalFailure()
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())
