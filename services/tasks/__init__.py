import asyncio
from typing import Awaitable, Callable, Dict
from database.models import TaskStatus, TaskType
from services.errors import ExternalServiceError
from services.progress import ProgressReporter
from services.tasks.file_processing import process_file_task
from services.tasks.generation import (
    process_question_generation_task,
    process_answer_generation_task,
    process_data_distillation_task
)
from services.tasks.queue import TaskQueue
from utils.logger import get_logger

logger = get_logger('task_processor', 'business')

TASK_PROCESSORS: Dict[str, Callable[[Dict, object], Awaitable[None]]] = {
    TaskType.PDF_PROCESSING: process_file_task,
    TaskType.TEXT_PROCESSING: process_file_task,
    TaskType.QUESTION_GENERATION: process_question_generation_task,
    TaskType.ANSWER_GENERATION: process_answer_generation_task,
    TaskType.DATA_DISTILLATION: process_data_distillation_task,
}


async def mark_task_failed(task: Dict, context, exc: Exception):
    reporter = ProgressReporter(task, context.task_manager, context.events)
    await reporter.finish(TaskStatus.FAILED, f"处理失败: {exc}")


async def process_task(task_id: str, context) -> None:
    """
    加载任务并分发给对应的处理器

    外部服务异常在队列允许重试时继续抛出，由队列重试；其余异常直接把任务置为失败。
    重试只针对逃出处理器的异常：文件转换、单条生成的失败已在处理器内部记录，
    不会触发整任务重试。
    """
    task = await asyncio.to_thread(context.task_manager.get_task, task_id)
    if not task:
        logger.warning(f"任务不存在，跳过: {task_id}")
        return
    if task['status'] != TaskStatus.RUNNING:
        logger.info(f"任务已结束(status={task['status']})，跳过: {task_id}")
        return

    processor = TASK_PROCESSORS.get(task['task_type'])
    if not processor:
        logger.error(f"未知的任务类型: {task['task_type']}")
        await mark_task_failed(task, context, ValueError(f"未知的任务类型: {task['task_type']}"))
        return

    logger.info(f"开始处理任务: {task_id}, type={task['task_type']}")
    try:
        await processor(task, context)
    except Exception as e:
        if isinstance(e, ExternalServiceError) and context.queue.max_retries > 0:
            raise
        logger.error(f"任务处理失败: {task_id}, {e}")
        await mark_task_failed(task, context, e)


__all__ = ['TASK_PROCESSORS', 'TaskQueue', 'process_task', 'mark_task_failed']
