import os

ENV = os.getenv("VIDLY_ENV", "development")

# Auth
JWT_PRIVATE_KEY = os.getenv("VIDLY_JWT_PRIVATE_KEY")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 24 * 60))

# Database: transactions need a replica set
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "mongodb://localhost:27017,localhost:27018,localhost:27019/?replicaSet=rs",
)
DATABASE_NAME = os.getenv("DATABASE_NAME", f"vidly_{ENV}")

LOG_DIR = os.getenv("VIDLY_LOG_DIR", "logs" if ENV == "production" else f"logs/{ENV}")

PORT = int(os.getenv("PORT", 4000))


def check():
    if not JWT_PRIVATE_KEY:
        raise RuntimeError("FATAL ERROR: VIDLY_JWT_PRIVATE_KEY is not defined.")
