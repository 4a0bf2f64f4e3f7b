import asyncio
from typing import Optional
from database.task_manager import TaskManager
from services.events import EventBus
from services.tasks import TaskQueue, process_task, mark_task_failed
from utils.logger import get_logger

logger = get_logger('app_context', 'app')


class AppContext:
    """
    进程级运行上下文，持有事件总线、任务存储和任务队列

    由 FastAPI lifespan 创建，startup() / shutdown() 显式管理生命周期。
    """

    def __init__(self, task_manager: Optional[TaskManager] = None, workers: Optional[int] = None,
                 max_retries: Optional[int] = None, retry_backoff: Optional[float] = None):
        self.task_manager = task_manager or TaskManager()
        self.events = EventBus()
        self.queue = TaskQueue(
            self._handle,
            workers=workers,
            max_retries=max_retries,
            retry_backoff=retry_backoff,
            on_failure=self._handle_failure
        )

    async def _handle(self, task_id: str):
        await process_task(task_id, self)

    async def _handle_failure(self, task_id: str, exc: Exception):
        task = await asyncio.to_thread(self.task_manager.get_task, task_id)
        if task:
            await mark_task_failed(task, self, exc)

    async def startup(self):
        await self.queue.start()
        # 上次进程退出时仍在运行的任务无法继续，统一置为失败
        stale = await asyncio.to_thread(self.task_manager.get_running_tasks)
        for task in stale:
            await mark_task_failed(task, self, RuntimeError("服务重启，任务中断"))
        if stale:
            logger.warning(f"已将 {len(stale)} 个遗留运行中任务置为失败")
        logger.info("应用上下文已启动")

    async def shutdown(self):
        await self.queue.stop()
        self.events.clear()
        logger.info("应用上下文已关闭")

    async def submit(self, task_id: str):
        await self.queue.enqueue(task_id)
