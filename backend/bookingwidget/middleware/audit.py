# backend/bookingwidget/middleware/audit.py
# writes: method / path / status; embed key; origin; duration
# never blocks the request, never touches the DB

import json
import logging
import time

from fastapi import Request

logger = logging.getLogger("bookingwidget.audit")


async def audit_middleware(request: Request, call_next):
    start_ts = time.time()

    response = await call_next(request)

    duration_ms = int((time.time() - start_ts) * 1000)

    record = {
        "ts": int(start_ts),
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "embed_key": request.path_params.get("embed_key") or request.query_params.get("widgetKey"),
        "origin": request.headers.get("Origin") or request.headers.get("Referer", ""),
        "ip": request.headers.get("X-Real-IP") or (request.client.host if request.client else ""),
        "ua": request.headers.get("User-Agent", ""),
        "duration_ms": duration_ms,
    }

    logger.info(json.dumps(record, ensure_ascii=False))

    return response
