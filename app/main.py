import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from app.models.database import init_db, check_db
from app.config import settings
from fastapi.middleware.cors import CORSMiddleware
from app.api.router import router
from app.dependencies import get_db_path
from app.services.whatsapp import WhatsAppClient

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(settings.db_path)
    app.state.whatsapp = WhatsAppClient(
        settings.WHATSAPP_ACCESS_TOKEN,
        settings.WHATSAPP_PHONE_NUMBER_ID,
        settings.WHATSAPP_API_VERSION,
    )
    logger.info("JuiceBot backend started (%s)", settings.ENVIRONMENT)
    yield
    await app.state.whatsapp.close()

app = FastAPI(
    title="JuiceBot Backend",
    description="WhatsApp ordering bot and catalog/order API for a juice bar.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(router)


@app.get("/health")
async def health(db_path: str = Depends(get_db_path)):
    database = await check_db(db_path)
    status_code = 200 if database else 503
    return JSONResponse(
        {"status": "ok" if database else "degraded", "database": "ok" if database else "unavailable"},
        status_code=status_code,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
