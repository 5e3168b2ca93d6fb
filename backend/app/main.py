import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.runtime import build_runtime
from app.database.connection import close_mongo_connection, connect_to_mongo
from app.repositories.message_repository import MessageRepository
from app.routers.messages import router as messages_router
from app.routers.presence import router as presence_router
from app.routers.realtime import router as realtime_router
from app.utils.envelope import fail


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    db = await connect_to_mongo()
    await MessageRepository(db).ensure_indexes()
    app.state.runtime = build_runtime(settings, db)
    try:
        yield
    finally:
        app.state.runtime.shutdown()
        await close_mongo_connection()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed bodies answer in the envelope like every other failure
    errors = exc.errors()
    message = "Malformed request"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid {field}: {errors[0].get('msg')}" if field else f"Invalid request: {errors[0].get('msg')}"
    logger.debug("Rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=200, content=fail(message))


app.include_router(messages_router)
app.include_router(presence_router)
app.include_router(realtime_router)


@app.get("/api/status")
async def status():

    return {"message": "Server is live"}
