"""
Root logger setup. Timestamps are rendered in IST since the portal's operators
and the OTP audit trail are India-based.
"""
import logging
from datetime import datetime

import pytz

IST = pytz.timezone("Asia/Kolkata")


class ISTFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        record_time = datetime.fromtimestamp(record.created, IST)
        return record_time.strftime(datefmt) if datefmt else record_time.isoformat()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the root logger. Safe to call repeatedly."""
    logger = logging.getLogger()
    if not logger.handlers:
        formatter = ISTFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
