"""Run the booking API with uvicorn.

Usage:
    python -m backend.serve
"""
import logging

import uvicorn

from backend.core import config


def main() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    config.validate_runtime_config()
    uvicorn.run('backend.main:app', host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
