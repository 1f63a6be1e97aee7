from __future__ import annotations

import os
import random
import time

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse


NAME = os.getenv("SERVICE_NAME", "example")
STATUS_CODE = int(os.getenv("STATUS_CODE", "200"))
DELAY_MS = int(os.getenv("DELAY_MS", "0"))
FAIL_RATE = float(os.getenv("FAIL_RATE", "0"))  # 0..1

app = FastAPI(title=f"Example dependency {NAME}")


def _maybe_fail() -> None:
    # Optional fault injection to exercise the harness' error paths.
    if DELAY_MS > 0:
        time.sleep(DELAY_MS / 1000.0)
    if FAIL_RATE > 0 and random.random() < FAIL_RATE:
        raise HTTPException(status_code=503, detail="injected failure")


@app.get("/ping", response_class=PlainTextResponse)
def ping() -> PlainTextResponse:
    _maybe_fail()
    return PlainTextResponse("pong", status_code=STATUS_CODE, headers={"X-Served-By": NAME})


@app.get("/status/{code}", response_class=PlainTextResponse)
def status(code: int) -> PlainTextResponse:
    _maybe_fail()
    return PlainTextResponse(f"{NAME} answered {code}", status_code=code, headers={"X-Served-By": NAME})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy", "service": NAME}
