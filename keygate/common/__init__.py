# Common utilities
from keygate.common.config import Config as Config
from keygate.common.logging_utils import setup_logger as setup_logger

__all__ = ["Config", "setup_logger"]
