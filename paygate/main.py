import logging
from contextlib import asynccontextmanager
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from .routers import payments
from .db import init_db, engine
from .config import settings
from .errors import PaygateError
from .services.proof import get_signing_key
from .services.sweeper import RedeliverySweeper
from .utils import get_store

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # init db tables if not using migrations
    await init_db()

    try:
        get_signing_key()
    except PaygateError as e:
        # proofs fail closed per request; payments can still be confirmed
        logger.error(f"Proof signing key unusable: {e.message} {e.details}")

    sweeper = RedeliverySweeper(get_store())
    if settings.retry_enabled:
        sweeper.start()

    yield

    sweeper.shutdown(wait=True)
    await engine.dispose()


app = FastAPI(title="Paygate Payments Service", lifespan=lifespan)

# CORS - allow your app domain(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # change to your frontend domains in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PaygateError)
async def paygate_error_handler(request: Request, exc: PaygateError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message} {exc.details}")
    else:
        logger.warning(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health():
    return {"status": "ok", "env": settings.env}


app.include_router(payments.router)

if __name__ == "__main__":
    uvicorn.run("paygate.main:app", host=settings.app_host, port=settings.app_port, reload=(settings.env != "production"))
