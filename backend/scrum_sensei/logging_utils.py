"""Centralized logging configuration for the Scrum Sensei backend."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Iterable, Union


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
	level: Union[int, str] = logging.INFO,
	*,
	handlers: Iterable[logging.Handler] | None = None,
) -> Logger:
	"""Configure the root logger once; repeated calls only adjust the level."""

	if isinstance(level, str):
		level = logging.getLevelName(level.upper())
		if not isinstance(level, int):
			level = logging.INFO

	logger = logging.getLogger()
	logger.setLevel(level)

	if handlers is None:
		if not any(getattr(h, "_scrum_sensei", False) for h in logger.handlers):
			stream_handler = logging.StreamHandler()
			stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
			stream_handler._scrum_sensei = True  # type: ignore[attr-defined]
			logger.addHandler(stream_handler)
	else:
		for handler in handlers:
			logger.addHandler(handler)

	# httpx logs every request line at INFO
	logging.getLogger("httpx").setLevel(logging.WARNING)
	return logger


__all__ = ["configure_logging", "DEFAULT_LOG_FORMAT"]
