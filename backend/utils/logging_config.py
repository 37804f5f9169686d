import logging
import logging.handlers
import contextvars
from pathlib import Path
from typing import Optional

from core.config import settings
from core.security import verify_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Loggers whose records also go to security.log
SECURITY_LOGGERS = ("services.fraud_guard", "api.dependencies")


def map_log_level(level_name: str) -> int:
    try:
        return getattr(logging, (level_name or "INFO").upper())
    except AttributeError:
        return logging.INFO


uid_var = contextvars.ContextVar("uid", default="-")
api_var = contextvars.ContextVar("api", default="-")
client_ip_var = contextvars.ContextVar("client_ip", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Inject per-request context variables
        record.uid = uid_var.get()
        record.api = api_var.get()
        record.client_ip = client_ip_var.get()
        return True


def _build_rotating_file_handler(filename: str, level: int, formatter: logging.Formatter, log_dir: Path) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        interval=1,
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _build_handlers(level: int, log_dir: Path) -> dict:
    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(uid)s - %(client_ip)s - %(api)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())

    return {
        "app": _build_rotating_file_handler("app.log", level, formatter, log_dir),
        "access": _build_rotating_file_handler("access.log", level, formatter, log_dir),
        "error": _build_rotating_file_handler("error.log", logging.WARNING, formatter, log_dir),
        "security": _build_rotating_file_handler("security.log", logging.INFO, formatter, log_dir),
        "console": console_handler,
    }


def _reset_handlers(target_logger: logging.Logger, handlers: list, level: int) -> None:
    for h in list(target_logger.handlers):
        target_logger.removeHandler(h)
    for h in handlers:
        target_logger.addHandler(h)
    target_logger.setLevel(level)


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Configure logging with daily rotation and TTL-based retention.

    - Rotates at midnight UTC; keeps last LOG_TTL_DAYS files
    - Every record carries the caller uid, client IP and API path
    - Signature and IP-ban events are duplicated into security.log
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    handlers = _build_handlers(level, log_dir)
    default_handlers = [handlers["app"], handlers["error"], handlers["console"]]

    # Root logger carries the module loggers (services.*, db.*, api.*)
    _reset_handlers(logging.getLogger(), default_handlers, level)

    app_logger = logging.getLogger(app_logger_name or "pocket_rewards")
    app_logger.propagate = False
    _reset_handlers(app_logger, default_handlers, level)

    for name in SECURITY_LOGGERS:
        lgr = logging.getLogger(name)
        _reset_handlers(lgr, [handlers["security"]], level)

    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        lgr = logging.getLogger(name)
        lgr.propagate = False
        _reset_handlers(lgr, default_handlers, level)
    # uvicorn.access -> access + console
    access_logger = logging.getLogger("uvicorn.access")
    access_logger.propagate = False
    _reset_handlers(access_logger, [handlers["access"], handlers["console"]], level)

    return app_logger


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        uid = "-"
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            payload = verify_token(auth_header.split(" ", 1)[1])
            if payload:
                uid = payload.get("sub") or "-"

        client_ip = request.client.host if request.client else "-"
        if settings.TRUST_FORWARDED_FOR and request.headers.get("x-forwarded-for"):
            client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()

        tokens = (
            uid_var.set(uid),
            api_var.set(f"{request.method} {request.url.path}"),
            client_ip_var.set(client_ip),
        )
        try:
            return await call_next(request)
        finally:
            uid_var.reset(tokens[0])
            api_var.reset(tokens[1])
            client_ip_var.reset(tokens[2])
