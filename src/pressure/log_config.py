import logging
import os

from src.pressure.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Console logging always; error.log and combined.log as well when LOG_DIR is set."""
    handlers = [logging.StreamHandler()]

    if settings.log_dir:
        os.makedirs(settings.log_dir, exist_ok=True)
        combined = logging.FileHandler(os.path.join(settings.log_dir, "combined.log"), encoding="utf-8")
        errors = logging.FileHandler(os.path.join(settings.log_dir, "error.log"), encoding="utf-8")
        errors.setLevel(logging.ERROR)
        handlers += [combined, errors]

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, handlers=handlers, force=True)

    # uvicorn runs with log_config=None, let its records reach the root handlers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True


def flush_logging() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()
