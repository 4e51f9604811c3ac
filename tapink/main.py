import logging
import sys

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables from .env file
load_dotenv()

from tapink.exception_handlers import register_exception_handlers
from tapink.lifespan import lifespan
from tapink.middleware.logging import LoggingMiddleware
from tapink.middleware.request_id import RequestIDMiddleware
from tapink.routers import wallet_pass

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger("tapink")

app = FastAPI(title="TapInk Wallet Pass Service", version="1.0.0", lifespan=lifespan)

# Starlette runs the last-added middleware first, so RequestID wraps Logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(wallet_pass.router)


@app.get("/health")
async def health():
    return {"ok": True}
