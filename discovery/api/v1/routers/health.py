# discovery/api/v1/routers/health.py
import asyncio
import subprocess
import time
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from discovery.core.config import get_settings
from discovery.db import mongo
from discovery.db.redis import get_redis

router = APIRouter(tags=["health"])
START_TIME = time.time()
CHECK_TIMEOUT_S = 2.0

# Only these decide the overall status; the search index can be missing
# or building while listings are still served from the store.
CRITICAL_CHECKS = ("mongodb", "redis")


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL)
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    return out.decode().strip()


async def _check_mongo() -> str:
    await mongo.get_db().command("ping")
    return "ok"


async def _check_search_index(index_name: str) -> str:
    found = await mongo.get_db()["products"].list_search_indexes(index_name).to_list(length=1)
    if not found:
        return "missing"
    return str(found[0].get("status") or "unknown").lower()


async def _check_redis() -> str:
    r = get_redis()
    if r is None:
        return "skipped"
    await r.ping()
    return "ok"


async def _run(check) -> str:
    try:
        return await asyncio.wait_for(check, timeout=CHECK_TIMEOUT_S)
    except Exception as e:  # reported, never raised: /health must answer
        return f"error: {e!r}"


@router.get("/health")
async def health():
    """
    Mongo ping, Atlas Search index status and Redis ping, run concurrently
    with a short timeout each. 503 when a critical dependency is down.
    """
    settings = get_settings()
    mongodb, search_index, redis = await asyncio.gather(
        _run(_check_mongo()),
        _run(_check_search_index(settings.SEARCH_INDEX)),
        _run(_check_redis()),
    )
    checks = {
        "app_name": settings.APP_NAME,
        "env": settings.APP_ENV,
        "version": settings.GIT_SHA if settings.GIT_SHA != "unknown" else _git_sha(),
        "uptime_seconds": int(time.time() - START_TIME),
        "mongodb": mongodb,
        "search_index": search_index,
        "redis": redis,
    }
    ok = all(checks[k] in ("ok", "skipped") for k in CRITICAL_CHECKS)
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "error", "checks": checks, "timestamp": int(time.time())},
    )
