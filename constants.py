import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Empty means single-instance mode, no cross-instance bridge
REDIS_URL = os.getenv("REDIS_URL", "")

WS_PATH = os.getenv("WS_PATH", "/api/ws")

HEARTBEAT_INTERVAL = float(os.getenv("HEARTBEAT_INTERVAL", 30))
SEND_TIMEOUT = float(os.getenv("SEND_TIMEOUT", 5))
SHUTDOWN_GRACE = float(os.getenv("SHUTDOWN_GRACE", 10))

# "*" allows every origin; connections without an Origin header are always accepted
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,https://localhost:3000").split(",")
    if origin.strip()
]
