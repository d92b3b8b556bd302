import sys
from loguru import logger

def configure_logging(level: str = "INFO") -> None:
    """Swap loguru's default sink for a single stderr sink at `level`."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {name}:{function} - {message}",
    )
