"""
Analysis Proxy
==============
Stateless HTTP handler that keeps the Autoderm API key off the client.

    OPTIONS /analyze-skin  -> 200, empty body
    POST    /analyze-skin  -> 200 upstream JSON | 500 {"error": ...}

A missing image is answered with 500, not 400, to stay compatible with
existing clients. Persistence is the caller's job.

Usage
-----
    dermasight-proxy                 # or: uvicorn dermasight.api.proxy:app
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from dermasight.api.classifier import AutodermClient
from dermasight.app import config
from dermasight.app.errors import DermaSightError, InvalidRequest
from dermasight.app.schemas import AnalyzeRequest, ErrorResponse

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

ClassifierFactory = Callable[[], AutodermClient]


def get_classifier_factory() -> ClassifierFactory:
    """Dependency: how to build the upstream client.

    A factory rather than a client, so that the key is only looked up once
    the request body has been validated.
    """
    return AutodermClient.from_env


@asynccontextmanager
async def lifespan(_: FastAPI):
    if not config.api_key_configured():
        logger.warning(
            "[⚠] %s is not set; /analyze-skin will answer 500 until it is",
            config.API_KEY_ENV,
        )
    yield


app = FastAPI(title="DermaSight Analysis Proxy", lifespan=lifespan)


def _error(message: str) -> JSONResponse:
    body = ErrorResponse(error=message)
    return JSONResponse(status_code=500, content=body.model_dump(), headers=CORS_HEADERS)


async def _read_image(request: Request) -> str:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequest("No image data provided") from exc
    if not isinstance(body, dict):
        raise InvalidRequest("No image data provided")
    try:
        return AnalyzeRequest.model_validate(body).imageBase64
    except ValidationError as exc:
        raise InvalidRequest("No image data provided") from exc


@app.options("/analyze-skin")
async def analyze_skin_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@app.post("/analyze-skin")
async def analyze_skin(
    request: Request,
    classifier_factory: ClassifierFactory = Depends(get_classifier_factory),
):
    try:
        image_base64 = await _read_image(request)
        classifier = classifier_factory()
        result = await run_in_threadpool(classifier.classify, image_base64)
    except DermaSightError as exc:
        logger.error("Error in analyze-skin: %s", exc)
        return _error(str(exc))
    except Exception:
        logger.exception("Unexpected error in analyze-skin")
        return _error("An error occurred")

    return JSONResponse(status_code=200, content=result, headers=CORS_HEADERS)


@app.get("/health")
async def health():
    return {"status": "ok", "classifier_configured": config.api_key_configured()}


def main() -> None:
    import uvicorn

    config.configure_logging()
    uvicorn.run(app, host=config.PROXY_HOST, port=config.PROXY_PORT)


if __name__ == "__main__":
    main()
