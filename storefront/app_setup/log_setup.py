import logging

from storefront.config import LOG_LEVEL

def configure_logging(level: str = LOG_LEVEL) -> None:
    """
    Aligne le niveau des loggers 'storefront.*' sur LOG_LEVEL (même variable qu'uvicorn).
    Les messages passent par le handler racine (uvicorn en serveur, pytest en tests).
    """
    logger = logging.getLogger("storefront")
    logger.setLevel(getattr(logging, (level or "info").upper(), logging.INFO))
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
