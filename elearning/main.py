import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from elearning.config import settings
from elearning.database import engine, Base
from elearning.errors import register_exception_handlers
from elearning.limiter import limiter
from elearning.routers import user, course, admin, payment
from elearning.services.payment_gateway import RazorpayGateway, PayOSClient
from elearning.services.uploads import UPLOAD_BASE_DIR

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Server is running")
    yield
    await engine.dispose()

app = FastAPI(title="E-Learning Platform API", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
register_exception_handlers(app)

app.state.payment_gateway = RazorpayGateway(
    settings.RAZORPAY_KEY_ID,
    settings.RAZORPAY_KEY_SECRET,
    settings.RAZORPAY_API_URL,
)
app.state.payment_links = PayOSClient(
    settings.PAYOS_CLIENT_ID,
    settings.PAYOS_API_KEY,
    settings.PAYOS_CHECKSUM_KEY,
    settings.PAYOS_API_URL,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=UPLOAD_BASE_DIR), name="uploads")

app.include_router(user.router, prefix="/api", tags=["user"])
app.include_router(course.router, prefix="/api", tags=["course"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(payment.router, tags=["payment"])

@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Server is running"
