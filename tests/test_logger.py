import os
from config import LOG_CONFIG
from utils.logger import get_logger, get_task_logger


def test_logger_is_initialized_once():
    first = get_logger('logger_test', 'business')
    second = get_logger('logger_test', 'business')
    assert first is second
    assert len(first.handlers) == 2


def test_app_and_business_loggers_are_separate():
    app_logger = get_logger('logger_split', 'app')
    business_logger = get_logger('logger_split', 'business')
    assert app_logger is not business_logger
    assert os.path.exists(os.path.join(LOG_CONFIG['log_dir'], 'app.log'))


def test_task_logger_prefixes_task_id():
    log = get_task_logger(get_logger('logger_task', 'business'), 't-1')
    msg, kwargs = log.process('开始处理', {})
    assert msg == '[task=t-1] 开始处理'
    assert kwargs == {}
