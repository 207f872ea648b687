import copy
import logging.config

import uvicorn
from uvicorn.config import LOGGING_CONFIG

import config

custom_logging = copy.deepcopy(LOGGING_CONFIG)
log_format = "%(asctime)s | %(levelprefix)s %(name)s | %(message)s"
custom_logging["formatters"]["default"]["fmt"] = log_format
custom_logging["formatters"]["access"]["fmt"] = (
    "%(asctime)s | %(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"
)
custom_logging["formatters"]["default"]["datefmt"] = "%Y-%m-%d %H:%M:%S"
custom_logging["formatters"]["access"]["datefmt"] = "%Y-%m-%d %H:%M:%S"
# Route application loggers through uvicorn's default handler.
for package in ("services", "realtime", "events", "invalidation", "cache"):
    custom_logging["loggers"][package] = {"handlers": ["default"], "level": "INFO", "propagate": False}


def main() -> None:
    logging.config.dictConfig(custom_logging)
    uvicorn.run(
        "services.webapp.main:app",
        host=config.WEBAPP_HOST,
        port=config.WEBAPP_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
