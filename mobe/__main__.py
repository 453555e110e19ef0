"""Run the HTTP server: ``python -m mobe``."""

from __future__ import annotations

import uvicorn

from .api import create_app
from .config import ServerConfig
from .log import configure_logging


def main() -> None:
    config = ServerConfig()
    configure_logging(config.log_level, config.error_log_path)
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    main()
