import logging

import uvicorn

from bookshelf import config
from bookshelf.app import create_app
from bookshelf.logging_config import setup_logging

logger = logging.getLogger("bookshelf")


def main():
    setup_logging(config.LOG_LEVEL)
    app = create_app()
    logger.info("Server started on port %d", config.PORT)
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_config=None)


if __name__ == "__main__":
    main()
