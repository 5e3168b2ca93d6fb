import logging
from typing import Any, Awaitable, Dict

from pymongo.errors import PyMongoError

from app.services.exceptions import ChatError


logger = logging.getLogger(__name__)


def ok(**payload: Any) -> Dict[str, Any]:
    return {"success": True, **payload}


def fail(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message}


async def run_enveloped(operation: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
    """Await a handler body and turn any failure into the uniform failure envelope."""
    try:
        return await operation
    except ChatError as exc:
        return fail(exc.message)
    except PyMongoError as exc:
        logger.exception("Store error while handling request")
        return fail(f"Storage unavailable: {exc}")
    except Exception as exc:
        logger.exception("Unhandled error while handling request")
        return fail(str(exc) or exc.__class__.__name__)
