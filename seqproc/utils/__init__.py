from .log import CustomLogger, Rlogger, call

__all__ = [
        'CustomLogger',
        'Rlogger',
        'call',
]
