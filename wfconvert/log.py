import sys

from loguru import logger

FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {name}:{line} - {message}"


def configure_logging(level: str = "WARNING", verbose: bool = False) -> None:
    """Single stderr sink for the CLI; library users configure loguru themselves."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else level.upper(), format=FORMAT)
    logger.enable("wfconvert")
