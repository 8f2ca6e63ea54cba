import os
from datetime import datetime
import logging

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class EventLogger:
    """
    Configures the 'bingo' logger once: console output always, plus a dated
    log file when LOG_DIR is set. Modules log through logging.getLogger("bingo.<area>").
    """
    _configured = False

    def __init__(self, name: str = 'bingo'):
        self.logger = logging.getLogger(name)
        if EventLogger._configured:
            return
        self.logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

        log_format = logging.Formatter(LOG_FORMAT)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(log_format)
        self.logger.addHandler(console_handler)

        log_dir = os.getenv('LOG_DIR')
        if log_dir:
            # Create logs directory if it doesn't exist
            if not os.path.exists(log_dir):
                os.makedirs(log_dir)
            log_file = os.path.join(log_dir, f"{datetime.now().strftime('%Y-%m-%d')}.log")
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(log_format)
            self.logger.addHandler(file_handler)

        EventLogger._configured = True

    def info(self, message):
        self.logger.info(message)

    def warning(self, message):
        self.logger.warning(message)

    def error(self, message):
        self.logger.error(message)

    def debug(self, message):
        self.logger.debug(message)
