"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from meal_analyzer.app_logging import configure_logging
from meal_analyzer.containers import AppContainer
from meal_analyzer.domain.errors import DecodeError, NonFoodImageError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.debug)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(DecodeError)
    async def decode_error_handler(request: Request, exc: DecodeError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(NonFoodImageError)
    async def non_food_handler(
        request: Request, exc: NonFoodImageError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "The image does not appear to contain food.",
                "detected_content": exc.detected_content,
            },
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/stats")
    async def stats(request: Request) -> dict[str, object]:
        """Report resolver health: breakers, backfill queue and FDC cache."""
        state_container: AppContainer = request.app.state.container
        return state_container.resolver.stats()

    @app.post("/analyze")
    async def analyze(
        request: Request,
        weight_hint_g: float | None = Query(default=None, gt=0),
    ) -> dict[str, object]:
        """Analyze a meal photo sent as the raw request body."""
        state_container: AppContainer = request.app.state.container
        image_bytes = await request.body()
        logger.info("Received image for analysis: bytes=%s", len(image_bytes))
        result = await state_container.analyzer.analyze(image_bytes, weight_hint_g)
        return result.to_dict()

    @app.get("/nutrition")
    async def nutrition(
        request: Request,
        name: str = Query(min_length=1),
        grams: float = Query(default=100.0, gt=0),
    ) -> dict[str, object]:
        """Resolve nutrition for a named food and weight."""
        state_container: AppContainer = request.app.state.container
        if not name.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="name is required"
            )
        lookup = await state_container.resolver.lookup(name, grams)
        return {"name": name, "tier": lookup.tier.value, **lookup.nutrition.to_dict()}

    return app
