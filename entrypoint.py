import uvicorn

from constants import HEARTBEAT_INTERVAL, HOST, LOG_FILE, LOG_LEVEL, PORT, SHUTDOWN_GRACE
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting realtime server on {HOST}:{PORT}")
    # uvicorn handles SIGINT/SIGTERM and runs the app's lifespan shutdown
    # Transport-level pings are answered by browsers automatically and reap silent clients
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        ws_ping_interval=HEARTBEAT_INTERVAL,
        ws_ping_timeout=HEARTBEAT_INTERVAL,
        timeout_graceful_shutdown=int(SHUTDOWN_GRACE),
    )
