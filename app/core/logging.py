import logging
import sys


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """
    Configure logging to stdout with timestamps, levels and module names.

    Safe to call more than once; later calls only adjust the level.
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level)

    # Reduce SQLAlchemy noise in logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logging.getLogger("app")
