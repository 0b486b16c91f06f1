import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chainstats import __version__
from chainstats.config import settings
from chainstats.exceptions import AppError
from chainstats.fetchers.base import close_shared_session
from chainstats.routers import chain_stats_router, primary_network_router, system_router
from chainstats.schemas import ErrorResponse
from chainstats.services.chain_stats_service import ChainStatsService
from chainstats.services.primary_network_service import PrimaryNetworkService

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    chain_stats_service: ChainStatsService = None,
    primary_network_service: PrimaryNetworkService = None,
) -> FastAPI:
    """
    Build the API with its services.

    Each app owns one ChainStatsService and one PrimaryNetworkService, and
    with them the process-wide caches.
    """
    if chain_stats_service is None:
        chain_stats_service = ChainStatsService()
    if primary_network_service is None:
        primary_network_service = PrimaryNetworkService()

    app = FastAPI(title="Chain Stats API", version=__version__)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.state.chain_stats_service = chain_stats_service
    app.state.primary_network_service = primary_network_service

    app.dependency_overrides[chain_stats_router.get_chain_stats_service] = lambda: chain_stats_service
    app.dependency_overrides[primary_network_router.get_primary_network_service] = (
        lambda: primary_network_service
    )

    app.include_router(chain_stats_router.router)
    app.include_router(primary_network_router.router)
    app.include_router(system_router.router)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            ErrorResponse(error=exc.message).model_dump(exclude_none=True),
            status_code=exc.status_code,
        )

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            f"Chain stats API {__version__} starting "
            f"(cache TTL {chain_stats_service.cache.ttl_seconds}s, "
            f"upstream timeout {settings.request_timeout_seconds}s)"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down - cancelling background revalidation...")
        await chain_stats_service.cache.shutdown()
        await primary_network_service.cache.shutdown()
        await close_shared_session()
        logger.info("Shutdown complete")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8100)
