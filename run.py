#!/usr/bin/env python3
"""
Core Lending System Entry Point

Starts the FastAPI server with the host and port from configuration.
"""

import sys

from core_lending.config import get_config
from core_lending.logging_config import setup_logging
from core_lending.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format)

    logger.info(f"Starting Core Lending System on http://{config.api_host}:{config.api_port}")
    logger.info(f"Storage: {config.database_url}")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down Core Lending System")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
