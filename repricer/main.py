# repricer/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from repricer.core.logging_config import configure_logging
from repricer.routes import erp, health
from repricer.scheduler import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await start_scheduler()
    try:
        yield  # This is where the app runs
    finally:
        await stop_scheduler()


app = FastAPI(
    title="Metal Repricer",
    lifespan=lifespan
)


# Add middleware to handle HTTPS behind proxy
@app.middleware("http")
async def proxy_headers_middleware(request: Request, call_next):
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_proto == "https":
        request.scope["scheme"] = "https"
    response = await call_next(request)
    return response


app.include_router(erp.router)
app.include_router(health.router)
