import logging
import sys
import structlog
from pythonjsonlogger import jsonlogger


def setup_logging(level: str = "INFO", json_output: bool = False):
    """Structured logging setup shared by the API process and tooling"""

    # JSON formatter for production, plain lines for local runs
    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
        )
        renderer = structlog.processors.JSONRenderer()
    else:
        formatter = logging.Formatter('%(levelname)-8s %(name)s: %(message)s')
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Setup root logger; replace handlers so repeated calls don't duplicate output
    logger = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.handlers = [handler]
    logger.setLevel(level.upper())

    # SQL echo is far too noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return structlog.get_logger()
