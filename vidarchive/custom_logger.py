from loguru import logger
import sys


class LoggerManager:
    def __init__(self):
        self.console_sink_id = None
        self.file_sink_id = None

        # Always remove the default handler
        logger.remove()

    def enable_console(self, level: str = "INFO"):
        if self.console_sink_id is None:
            self.console_sink_id = logger.add(sys.stderr, level=level.upper(), colorize=True)

    def disable_console(self):
        if self.console_sink_id is not None:
            logger.remove(self.console_sink_id)
            self.console_sink_id = None

    def enable_file(self, path: str, level: str = "INFO", rotation: str = "10 MB", retention_days: int = 7):
        if self.file_sink_id is None:
            self.file_sink_id = logger.add(
                path,
                level=level.upper(),
                rotation=rotation,
                retention=f"{retention_days} days",
                enqueue=False,
            )

    def disable_file(self):
        if self.file_sink_id is not None:
            logger.remove(self.file_sink_id)
            self.file_sink_id = None

    def configure(self, config):
        """Apply a LoggingConfig: console sink always, file sink when enabled."""
        self.disable_console()
        self.enable_console(level=config.level)
        if config.enable_file and config.file:
            self.disable_file()
            self.enable_file(
                config.file,
                level=config.level,
                rotation=config.max_file_size,
                retention_days=config.retention_days,
            )

    def get_logger(self):
        return logger

log_manager = LoggerManager()
