from .logging import LOGGER_NAME, build_log_context, get_logger, log_event

__all__ = ["LOGGER_NAME", "build_log_context", "get_logger", "log_event"]
