from __future__ import annotations

from logging.config import dictConfig
from typing import Optional

from .config import settings

# Loggers with their own handler; they do not propagate to the root logger
_APP_LOGGERS = ("pipeline", "request")


def configure_logging(level: Optional[str] = None) -> None:
	level = (level or settings.LOG_LEVEL).upper()
	loggers = {
		"": {"handlers": ["console"], "level": level},
		"uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
		# RequestLogMiddleware already writes one line per request
		"uvicorn.access": {"level": "WARNING"},
	}
	for name in _APP_LOGGERS:
		loggers[name] = {"handlers": ["console"], "level": level, "propagate": False}
	dictConfig(
		{
			"version": 1,
			"disable_existing_loggers": False,
			"formatters": {
				"standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"}
			},
			"handlers": {
				"console": {
					"class": "logging.StreamHandler",
					"formatter": "standard",
				}
			},
			"loggers": loggers,
		}
	)
