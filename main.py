from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from loguru import logger
from tablestore.config import settings
from tablestore.database.manager import DatabaseManager
from tablestore.middleware.logging_md import LoggingMiddleware
from tablestore.logging.logger import LogConfig
from tablestore.exceptions.handler import BusinessException, global_exception_handler
from apps.library.api.router import router as library_router
from apps.models import provision_tables

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the configured store backend and provision entity tables."""
    manager = DatabaseManager.get_instance()
    await manager.connect()
    await provision_tables(manager.get_table_client())
    logger.info(f"Table store ready (backend: {manager.backend})")
    try:
        yield
    finally:
        await manager.disconnect()

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Initialize logging configuration
LogConfig.setup_logging()

# Register global exception handlers
app.add_exception_handler(BusinessException, global_exception_handler)
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(LoggingMiddleware)

# Mount routers (prefix from config)
app.include_router(
    library_router,
    prefix=settings.API_V1_BOOKS_PREFIX,
    tags=["Library"]
)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
