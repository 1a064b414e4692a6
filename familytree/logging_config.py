"""
Logging for the 'familytree' package: stdout always, a log file on request.
"""
import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = 'familytree'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def resolve_level(level: Union[int, str]) -> int:
    """Level number for a number or a name such as 'debug'; unknown names give INFO"""
    if isinstance(level, int):
        return level
    number = logging.getLevelName(str(level).strip().upper())
    return number if isinstance(number, int) else logging.INFO


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Point the package logger at stdout and, when log_file is set, append to that file.

    Calling it again replaces the handlers, so an app factory can run it on
    every create_app().
    """
    level = resolve_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='a', encoding='utf-8'))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug('Logging at %s%s', logging.getLevelName(level),
                 f', file {log_file}' if log_file else '')
    return logger
