import logging
import logging.handlers
import os
from datetime import datetime
from config import LOG_CONFIG

# app: 启动、请求、异常；business: 任务处理；access: HTTP 访问
LOG_FILES = {
    'app': lambda: 'app.log',
    'access': lambda: 'access.log',
    'business': lambda: f"wedataset_{datetime.now().strftime('%Y-%m-%d')}.log",
}


def _level(value: str) -> int:
    return getattr(logging, value.upper(), logging.INFO)


def setup_logger(name: str = 'wedataset', log_type: str = 'app') -> logging.Logger:
    """
    设置日志记录器

    Args:
        name: 日志记录器名称
        log_type: 日志类型，见 LOG_FILES；未知类型写入业务日志

    Returns:
        配置好的日志记录器
    """
    log_dir = LOG_CONFIG['log_dir']
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(f"{name}_{log_type}")
    logger.setLevel(_level(LOG_CONFIG['log_level']))
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_CONFIG['log_format'], datefmt=LOG_CONFIG['date_format'])

    console_handler = logging.StreamHandler()
    console_handler.setLevel(_level(LOG_CONFIG['console_level']))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_name = LOG_FILES.get(log_type, LOG_FILES['business'])()
    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, file_name),
        maxBytes=LOG_CONFIG['max_bytes'],
        backupCount=LOG_CONFIG['backup_count'],
        encoding=LOG_CONFIG['encoding']
    )
    file_handler.setLevel(_level(LOG_CONFIG['log_level']))
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


def get_logger(name: str = 'wedataset', log_type: str = 'business') -> logging.Logger:
    """获取日志记录器，同名同类型只初始化一次"""
    logger = logging.getLogger(f"{name}_{log_type}")
    if not logger.handlers:
        logger = setup_logger(name, log_type)
    return logger


class TaskLoggerAdapter(logging.LoggerAdapter):
    """在每条日志前附加任务 ID"""

    def process(self, msg, kwargs):
        return f"[task={self.extra['task_id']}] {msg}", kwargs


def get_task_logger(logger: logging.Logger, task_id: str) -> TaskLoggerAdapter:
    return TaskLoggerAdapter(logger, {'task_id': task_id})
