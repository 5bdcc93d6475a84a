import logging

import redis
from fastapi import APIRouter, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from callflow.core.config import settings
from callflow.core.database import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Readiness check failed: database unavailable", exc_info=True)
        raise HTTPException(status_code=503, detail="database unavailable")
    finally:
        db.close()
    redis_client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=2)
    try:
        redis_client.ping()
    except redis.RedisError:
        logger.warning("Readiness check failed: redis unavailable", exc_info=True)
        raise HTTPException(status_code=503, detail="redis unavailable")
    finally:
        redis_client.close()
    return {"status": "ready"}
