#!/usr/bin/env python3
"""
Purple Sweep - Logging System
Provides consistent logging across all components with size-based rotation.
"""

import logging
from logging.handlers import RotatingFileHandler

from .paths import paths


class SweepLogger:
    """Centralized logging with rotation."""

    _loggers: dict = {}
    _console_level: int = logging.WARNING

    @classmethod
    def get_logger(cls, name: str, level: int = logging.INFO) -> logging.Logger:
        """Get or create a logger for a component."""
        if name in cls._loggers:
            return cls._loggers[name]

        paths.logs.mkdir(parents=True, exist_ok=True)

        logger = logging.getLogger(f"purple-sweep.{name}")
        logger.setLevel(level)
        logger.handlers.clear()

        file_handler = RotatingFileHandler(
            paths.log_file(name),
            maxBytes=10*1024*1024,  # 10MB per file
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(level)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(cls._console_level)

        formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        logger.addHandler(file_handler)
        logger.addHandler(console_handler)

        cls._loggers[name] = logger
        return logger

    @classmethod
    def get_scan_logger(cls, session_id: str) -> logging.Logger:
        """Get logger for a specific scan session."""
        logger_name = f"scan.{session_id}"
        if logger_name in cls._loggers:
            return cls._loggers[logger_name]

        # Session-specific log in results directory
        log_file = paths.session_dir(session_id) / "scan.log"

        logger = logging.getLogger(f"purple-sweep.{logger_name}")
        logger.setLevel(logging.DEBUG)
        logger.handlers.clear()

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(threadName)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(cls._console_level)
        console_handler.setFormatter(logging.Formatter('%(levelname)s | %(message)s'))
        logger.addHandler(console_handler)

        cls._loggers[logger_name] = logger
        return logger

    @classmethod
    def release(cls, name: str):
        """Close and forget a cached logger's handlers."""
        logger = cls._loggers.pop(name, None)
        if logger is None:
            return
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger by name."""
    return SweepLogger.get_logger(name)


def get_scan_logger(session_id: str) -> logging.Logger:
    """Get a scan session logger."""
    return SweepLogger.get_scan_logger(session_id)


def set_console_level(level: int):
    """Set the console verbosity for existing and future loggers."""
    SweepLogger._console_level = level
    for logger in SweepLogger._loggers.values():
        for handler in logger.handlers:
            if type(handler) is logging.StreamHandler:
                handler.setLevel(level)
