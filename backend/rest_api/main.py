"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from rest_api.core.cors import configure_cors
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers import health_router, qr_router, shared_cart_router
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from shared.utils.exceptions import CartNotFoundError


def cart_not_found_handler(request: Request, exc: CartNotFoundError) -> JSONResponse:
    # Mutations are always preceded by a cart read; reaching this is a client bug
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "code": "CART_NOT_INITIALIZED",
                "message": f"No cart exists for table {exc.table_id}, fetch it first",
            }
        },
    )


def create_app(lifespan_handler=lifespan) -> FastAPI:
    """
    Build the REST application.

    Tests pass ``lifespan_handler=None`` and provide Redis, the database
    and the QR service through dependency overrides.
    """
    app = FastAPI(
        title="Table Check-in API",
        description="QR table check-in and shared table carts",
        version="0.1.0",
        lifespan=lifespan_handler,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(CartNotFoundError, cart_not_found_handler)

    register_middlewares(app)
    configure_cors(app)

    app.include_router(health_router)
    app.include_router(qr_router)
    app.include_router(shared_cart_router)
    return app


app = create_app()
