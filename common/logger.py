import logging
from enum import IntEnum
from typing import Optional


class Level(IntEnum):
    NOTSET = logging.NOTSET
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def parse(cls, value: str | int | None, default: Optional["Level"] = None) -> "Level":
        if value is None or value == "":
            return default if default is not None else cls.INFO
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        if name == "WARN":
            name = "WARNING"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown log level: {value!r}") from None


class Logger:
    DEFAULT_NAME = "contributions"
    _logger: Optional[logging.Logger] = None

    @classmethod
    def configure(cls, name: str, level: Level | int) -> None:
        # Several entrypoints (app, migrate, tests) may configure; last one wins.
        logging.basicConfig(
            level=int(level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        cls._logger = logging.getLogger(name)
        cls._logger.setLevel(int(level))

    @classmethod
    def get(cls) -> logging.Logger:
        if cls._logger is None:
            cls._logger = logging.getLogger(cls.DEFAULT_NAME)
        return cls._logger

    @classmethod
    def log(cls, level: Level | int, msg: str, *args, **kwargs) -> None:
        cls.get().log(int(level), msg, *args, **kwargs)

    @classmethod
    def debug(cls, msg: str, *args, **kwargs) -> None:
        cls.get().debug(msg, *args, **kwargs)

    @classmethod
    def info(cls, msg: str, *args, **kwargs) -> None:
        cls.get().info(msg, *args, **kwargs)

    @classmethod
    def warning(cls, msg: str, *args, **kwargs) -> None:
        cls.get().warning(msg, *args, **kwargs)

    @classmethod
    def error(cls, msg: str, *args, **kwargs) -> None:
        cls.get().error(msg, *args, **kwargs)

    @classmethod
    def exception(cls, msg: str, *args, exc_info: bool = True, **kwargs) -> None:
        cls.get().exception(msg, *args, exc_info=exc_info, **kwargs)

    # third-party loggers (httpx, uvicorn, sqlalchemy)
    @classmethod
    def silence(cls, *logger_names: str, level: Level | int = Level.CRITICAL) -> None:
        for n in logger_names:
            logging.getLogger(n).setLevel(int(level))
