from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI
import logging
import sys
import os

from fastapi.middleware.cors import CORSMiddleware


# Load environment variables
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


# MongoDB / GridFS
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "interview_platform")
GRIDFS_BUCKET_NAME = os.getenv("GRIDFS_BUCKET_NAME", "uploads")
GRIDFS_CHUNK_SIZE = int(os.getenv("GRIDFS_CHUNK_SIZE", str(255 * 1024)))

# Uploads
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10MB
MAX_FILES_PER_UPLOAD = int(os.getenv("MAX_FILES_PER_UPLOAD", "5"))

# Auth
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
AI_REQUEST_TIMEOUT = float(os.getenv("AI_REQUEST_TIMEOUT", "60"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    from utils.database import MongoDatabase
    from services.ai_analyzer import ResumeAnalyzer, create_gemini_client

    logger.info(f"Connecting to MongoDB database '{MONGO_DB_NAME}'")
    database = MongoDatabase.from_uri(
        MONGO_URI,
        MONGO_DB_NAME,
        bucket_name=GRIDFS_BUCKET_NAME,
        chunk_size_bytes=GRIDFS_CHUNK_SIZE,
    )
    database.ensure_indexes()
    app.state.database = database

    gemini_client = create_gemini_client(GEMINI_API_KEY, AI_REQUEST_TIMEOUT)
    if gemini_client is None:
        logger.warning("GEMINI_API_KEY not set, document analysis will use fallback extraction")
    app.state.analyzer = ResumeAnalyzer(gemini_client, model=GEMINI_MODEL, timeout=AI_REQUEST_TIMEOUT)

    yield

    logger.info("Closing MongoDB connection")
    database.close()


app = FastAPI(title="Interview Assistant API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
