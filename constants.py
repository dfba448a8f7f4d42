import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

WS_PATH = os.getenv("WS_PATH", "/ws")

# Session id space: 9 decimal digits
SESSION_ID_MIN = 100000000
SESSION_ID_MAX = 999999999

SECRET_LENGTH = 8
SECRET_LETTERS = "abcdefghijklmnopqrstuvwxyz"
SECRET_DIGITS = "0123456789"

MAX_ID_ATTEMPTS = int(os.getenv("MAX_ID_ATTEMPTS", 1000))

OUTBOX_SIZE = int(os.getenv("OUTBOX_SIZE", 256))
