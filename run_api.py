import logging
import sys
from typing import Any, Dict

import uvicorn

from content_ingest.core.config import Config
from content_ingest.core.logging_config import setup_logging

logger = logging.getLogger("content_ingest.runner")

APP_FACTORY = "content_ingest.api.main:create_app"


def uvicorn_options(config: Config) -> Dict[str, Any]:
    """
    Server options for ``uvicorn.run``.

    The app is passed as a factory import string so that each worker
    process builds its own application from the environment.
    """
    return {
        "factory": True,
        "host": config.api.host,
        "port": config.api.port,
        "workers": 1 if config.api.debug else config.api.workers,
        "log_level": "debug" if config.api.debug else config.logging.level.lower(),
        "log_config": None,
    }


def main():
    config = Config.from_env()
    setup_logging(
        level=config.logging.level,
        log_format=config.logging.format,
        output=config.logging.output,
        file_path=config.logging.file_path,
        max_file_size=config.logging.max_file_size,
        backup_count=config.logging.backup_count,
    )

    issues = config.validate()
    for issue in issues:
        logger.warning(f"Configuration issue: {issue}")
    if issues and config.environment == "production":
        logger.error("Refusing to start with an invalid production configuration")
        sys.exit(1)

    options = uvicorn_options(config)
    logger.info(
        f"Starting content ingestion API on {config.api.host}:{config.api.port} "
        f"({options['workers']} workers)"
    )
    uvicorn.run(APP_FACTORY, **options)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)
