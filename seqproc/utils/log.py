from rich.logging import RichHandler
from rich.console import Console
from functools import wraps
import logging
import inspect
import polars as pl
from typing import Any, Optional
from pathlib import Path

# Custom levels between DEBUG and INFO
IO_LEVEL_NUM = 19
STEP_LEVEL_NUM = 18

LOGGER_NAME = "seqproc"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class CustomLogger(logging.Logger):
    """Logger with additional IO and STEP levels"""

    def io(self, message: Any, *args: Any, **kws: Any) -> None:
        """Log message at IO level (streams opened, files written)"""
        if self.isEnabledFor(IO_LEVEL_NUM):
            self._log(IO_LEVEL_NUM, message, args, **kws)

    def step(self, message: Any, *args: Any, **kws: Any) -> None:
        """Log message at STEP level (function boundaries)"""
        if self.isEnabledFor(STEP_LEVEL_NUM):
            self._log(STEP_LEVEL_NUM, message, args, **kws)


class Rlogger:
    """Process-wide logger configuration backed by ``rich``"""
    _instance: Optional['Rlogger'] = None
    logger: CustomLogger
    file_handler: Optional[logging.FileHandler] = None

    levels = {
        "CRITICAL": logging.CRITICAL,
        "INFO": logging.INFO,
        "IO": IO_LEVEL_NUM,
        "STEP": STEP_LEVEL_NUM,
        "DEBUG": logging.DEBUG,
    }

    def __new__(cls) -> 'Rlogger':
        if cls._instance is None:
            cls._instance = super(Rlogger, cls).__new__(cls)
            cls._instance.setup_logger()
        return cls._instance

    def setup_logger(self) -> None:
        logging.addLevelName(self.levels['STEP'], "STEP")
        logging.addLevelName(self.levels['IO'], "IO")

        # getLogger only builds a CustomLogger while the logger class is swapped in
        previous_class = logging.getLoggerClass()
        logging.setLoggerClass(CustomLogger)
        try:
            self.logger = logging.getLogger(LOGGER_NAME)  # type: ignore
        finally:
            logging.setLoggerClass(previous_class)
        self.logger.setLevel(logging.INFO)

        console_handler = RichHandler(console=Console(stderr=True, width=160))
        console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        self.logger.addHandler(console_handler)

    def enable_file_logging(self, filepath: str | Path, level: Optional[str] = None, mode: str = 'w') -> None:
        """Mirror the log into ``filepath``, at the console level unless ``level`` is given"""
        if level is not None and level not in self.levels:
            raise ValueError(f"levels supported {list(self.levels.keys())}")
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        self.disable_file_logging()

        handler = logging.FileHandler(filepath, mode=mode)
        handler.setLevel(self.logger.level if level is None else self.levels[level])
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        self.logger.addHandler(handler)
        self.file_handler = handler
        self.logger.io(f"logging to {filepath}")

    def disable_file_logging(self) -> None:
        if self.file_handler is not None:
            self.logger.removeHandler(self.file_handler)
            self.file_handler.close()
            self.file_handler = None

    def get_logger(self) -> CustomLogger:
        return self.logger

    def set_level(self, level: str) -> None:
        if level not in self.levels:
            raise ValueError(f"levels supported {list(self.levels.keys())}")
        self.logger.setLevel(self.levels[level])


def call(func):
    """Decorator to log function calls with arguments"""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        logger = Rlogger().get_logger()
        logger.step(f"{func.__name__}")

        if logger.isEnabledFor(logging.DEBUG):
            bound_args = inspect.signature(func).bind(*args, **kwargs)
            bound_args.apply_defaults()
            args_str = ',\n'.join([f"{k}={format_value(v)}" for k, v in bound_args.arguments.items()])
            logger.debug(f"Calling [bold red]{func.__name__}[/] with args:\n{args_str}", extra={"markup": True})
        value = func(*args, **kwargs)
        logger.debug(f"{func.__name__} returned:\n{format_value(value)}")
        return value
    return wrapper


def format_value(value: Any, limit: int = 200) -> str:
    """Short representation of an argument or return value"""
    if isinstance(value, pl.DataFrame):
        return f"pl.DataFrame(shape={value.shape}, cols={value.columns!r})"
    if isinstance(value, (list, tuple)) and len(value) > 5:
        return f"{type(value).__name__}(len={len(value)}, head={value[:5]!r})"[0:limit]
    return repr(value)[0:limit]
