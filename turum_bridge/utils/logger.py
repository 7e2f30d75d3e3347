# turum_bridge/utils/logger.py
import logging
import os

LEVELS = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10, "NONE": 100}
LOG_LEVEL = LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), 20)

_log = logging.getLogger("turum_bridge")
_log.setLevel(LOG_LEVEL)


def get_logger() -> logging.Logger:
    return _log


def log(level: str, msg: str):
    if LEVELS[level] >= LOG_LEVEL:
        _log.log(LEVELS[level], msg)


def debug(msg): log("DEBUG", msg)
def info(msg):  log("INFO", msg)
def warn(msg):  log("WARN", msg)
def error(msg): log("ERROR", msg)
