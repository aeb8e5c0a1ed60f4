"""
CORS configuration for the REST API.

The web client sends the table session cookie cross-origin, so
credentials are allowed and origins are always an explicit list
(``settings.cors_origins``), never ``*``.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config.constants import TABLE_SESSION_HEADER
from shared.config.settings import settings
from shared.infrastructure.correlation import REQUEST_ID_HEADER

CART_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]

REQUEST_HEADERS = [
    "Authorization",
    "Content-Type",
    TABLE_SESSION_HEADER,
    REQUEST_ID_HEADER,
    "Accept",
    "Accept-Language",
]

# Preflight cache; zero outside production so origin changes apply at once
PREFLIGHT_MAX_AGE = 600


def configure_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=CART_METHODS,
        allow_headers=REQUEST_HEADERS,
        expose_headers=[REQUEST_ID_HEADER],
        max_age=PREFLIGHT_MAX_AGE if settings.is_production else 0,
    )
