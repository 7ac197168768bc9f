import logging, json, os
from logging.handlers import TimedRotatingFileHandler
from contextvars import ContextVar

# Context variable for the refresh cycle currently running on this thread
CYCLE_ID_CTX: ContextVar[int | None] = ContextVar('cycle_id', default=None)

LOG_FILE_NAME = 'ai500-service.log'


class CycleIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        # Attach even if None for uniformity
        record.cycle_id = CYCLE_ID_CTX.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base = {
            'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'msg': record.getMessage(),
            'logger': record.name,
            'cycle_id': getattr(record, 'cycle_id', None),
        }
        event = getattr(record, 'event', None)
        if event:
            base['event'] = event
        if record.exc_info:
            base['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def setup_logging(log_dir: str = 'logs', log_format: str = 'text', level: str = 'INFO',
                  retention_days: int = 30) -> None:
    """Console + daily-rotated file logging on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    # Clear existing handlers to avoid duplicate logs on re-init
    root.handlers = []
    if log_format == 'json':
        fmt = JsonFormatter()
    else:
        fmt = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - cycle=%(cycle_id)s - %(message)s')
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.addFilter(CycleIdFilter())
    root.addHandler(ch)
    # Rotate at midnight, keep one file per day for the retention window
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME),
            when='midnight',
            backupCount=retention_days,
            encoding='utf-8',
        )
        fh.setFormatter(fmt)
        fh.addFilter(CycleIdFilter())
        root.addHandler(fh)
    except OSError:
        root.warning('Could not attach rotating file handler; continuing with console only')
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.info(f"Logging initialised: dir={log_dir} rotation=daily retention={retention_days}d")


def log_config(config):
    """Log current configuration"""
    logging.info("=== AI500 Configuration ===")
    for key, value in config.items():
        logging.info(f"{key}: {value}")
    logging.info("===========================")
