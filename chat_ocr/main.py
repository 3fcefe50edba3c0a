"""
Chat OCR Service - FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from chat_ocr.config import settings
from chat_ocr.logger import get_logger, configure_logging
from chat_ocr.models.common import ErrorResponse
from chat_ocr.ocr.ocr_factory import OCRFactory
from chat_ocr.routes.ocr_routes import router as ocr_router

# Configure logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: one OCR manager per process."""
    logger.info("Chat OCR Service starting", extra={
        "environment": settings.environment,
        "log_level": settings.log_level
    })

    app.state.ocr_manager = OCRFactory.create_manager(settings)

    yield

    logger.info("Chat OCR Service shutting down")
    await app.state.ocr_manager.cleanup()


# Create FastAPI app
app = FastAPI(
    title="Chat OCR Service",
    description="OCR orchestration for chat attachments (Google Vision + Tesseract)",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error("Unhandled exception", extra={
        "path": request.url.path,
        "method": request.method,
        "error": str(exc)
    }, exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="OCR processing failed",
            details={"error": str(exc)} if settings.is_development else {}
        ).model_dump(mode="json")
    )


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": settings.environment
    }


app.include_router(ocr_router, prefix="/api/v1", tags=["ocr"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chat_ocr.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level
    )
