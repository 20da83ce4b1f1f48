"""
FastAPI server for the rules search service.

Exposes POST /search-rules and GET /usage (bearer-token protected) and an
open GET /health.
Errors are mapped to a small set of stable JSON shapes; internal messages
stay in the logs.
"""

import hmac
import logging
from typing import Optional

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rules_search.config import Settings, configure_logging, load_settings
from rules_search.errors import ConfigurationError, RulesSearchError
from rules_search.models import SearchRequest
from rules_search.service import RulesSearchService, build_service

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


class UnauthorizedError(RulesSearchError):
    stage = "request"
    status_code = 401
    public_message = "Missing or invalid authorization"


def create_app(settings: Optional[Settings] = None, service: Optional[RulesSearchService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to load_settings()
        service: Defaults to build_service(settings); tests pass one with fakes

    Raises:
        ConfigurationError: no SERVICE_TOKENS, or missing model/search credentials
    """
    settings = settings or load_settings()
    if not settings.service_tokens:
        raise ConfigurationError("SERVICE_TOKENS must contain at least one bearer token")
    service = service or build_service(settings)
    tokens = tuple(settings.service_tokens)

    app = FastAPI(title="Rules Search Service")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    def require_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> None:
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise UnauthorizedError("missing bearer token")
        presented = credentials.credentials.encode()
        if not any(hmac.compare_digest(presented, token.encode()) for token in tokens):
            raise UnauthorizedError("bearer token not recognized")

    @app.exception_handler(RulesSearchError)
    async def handle_service_error(request: Request, exc: RulesSearchError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s stage failed (%s): %s", exc.stage, exc.kind, exc)
        else:
            logger.info("Request rejected at %s stage (%s): %s", exc.stage, exc.kind, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Invalid request body: %s", exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request body", "stage": "request"})

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/usage")
    def usage(_: None = Depends(require_token)) -> dict:
        payload = {}
        if service.budget is not None:
            payload["llm_calls_in_window"] = service.budget.in_window
            payload["llm_calls_total"] = service.budget.total_calls
            payload["llm_calls_rejected"] = service.budget.rejected_calls
        return payload

    @app.post("/search-rules")
    def search_rules(
        payload: SearchRequest,
        background_tasks: BackgroundTasks,
        _: None = Depends(require_token),
    ) -> dict:
        response = service.search(payload)
        background_tasks.add_task(service.log_query, payload, response)
        return response

    return app


def main() -> None:
    """Run the server with uvicorn."""
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
