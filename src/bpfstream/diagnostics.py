#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Diagnostics channel for non-fatal notices.

Parsers, the dispatcher and the aggregator report through a Diagnostics
instance handed to them instead of a module-level logger, so tests can
capture exactly what a single stream emitted.
"""

import logging
from typing import Any, Optional

DEFAULT_LOGGER_NAME = "bpfstream"


class Diagnostics:
    """Thin wrapper that formats key/value context onto a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(DEFAULT_LOGGER_NAME)

    @staticmethod
    def _format(message: str, fields: dict) -> str:
        if not fields:
            return message
        context = " ".join(f"{key}={value!r}" for key, value in fields.items())
        return f"{message} {context}"

    def debug(self, message: str, **fields: Any):
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format(message, fields))

    def info(self, message: str, **fields: Any):
        if self.logger.isEnabledFor(logging.INFO):
            self.logger.info(self._format(message, fields))

    def warning(self, message: str, **fields: Any):
        self.logger.warning(self._format(message, fields))
