"""USSD Analytics server. Entry point for the dashboard API."""

import logging

from ussd_analytics.config import load_config

_base_config = load_config()

# Configure logging
logging.basicConfig(
    level=getattr(logging, _base_config.log_level, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("ussd_analytics")


def main():
    """Run the analytics API over HTTP."""
    import uvicorn

    from ussd_analytics.api import create_api
    from ussd_analytics.core.services import create_services
    from ussd_analytics.storage.database import Database

    db_instance = Database(_base_config.db)
    db_instance.connect()

    svc = create_services(config=_base_config, db=db_instance)
    app = create_api(svc)

    logger.info(
        "Starting USSD Analytics (HTTP on %s:%d, API at %s)",
        _base_config.http_host, _base_config.http_port, _base_config.api_prefix or "/",
    )
    try:
        uvicorn.run(app, host=_base_config.http_host, port=_base_config.http_port)
    finally:
        svc.close()
        logger.info("Connection pool closed")


if __name__ == "__main__":
    main()
