import asyncio
from typing import Awaitable, Callable, List, Optional
from config import QUEUE_CONFIG
from utils.logger import get_logger

logger = get_logger('task_queue', 'business')


class TaskQueue:
    """
    后台任务队列

    接口创建任务后只负责入队，由 worker 协程依次取出执行。处理函数抛出异常时
    按 max_retries 重试，第 n 次重试前等待 retry_backoff * n 秒。
    """

    def __init__(self, handler: Callable[[str], Awaitable[None]], workers: Optional[int] = None,
                 max_retries: Optional[int] = None, retry_backoff: Optional[float] = None,
                 on_failure: Optional[Callable[[str, Exception], Awaitable[None]]] = None):
        self.handler = handler
        self.on_failure = on_failure
        self.workers = max(1, workers if workers is not None else QUEUE_CONFIG['workers'])
        self.max_retries = max(0, max_retries if max_retries is not None else QUEUE_CONFIG['max_retries'])
        self.retry_backoff = retry_backoff if retry_backoff is not None else QUEUE_CONFIG['retry_backoff']
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self):
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._workers = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        logger.info(f"任务队列已启动, workers={self.workers}, max_retries={self.max_retries}")

    async def stop(self):
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("任务队列已停止")

    async def enqueue(self, task_id: str):
        if not self.running:
            raise RuntimeError("任务队列未启动")
        await self._queue.put(task_id)
        logger.info(f"任务入队: {task_id}, 当前排队 {self._queue.qsize()}")

    async def join(self):
        """等待已入队任务全部处理完成"""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, index: int):
        while True:
            task_id = await self._queue.get()
            try:
                await self._run(task_id)
            finally:
                self._queue.task_done()

    async def _run(self, task_id: str):
        attempt = 0
        while True:
            try:
                await self.handler(task_id)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt >= self.max_retries:
                    logger.error(f"任务执行失败: {task_id}, 已重试 {attempt} 次, {e}")
                    if self.on_failure:
                        try:
                            await self.on_failure(task_id, e)
                        except Exception as hook_error:
                            logger.error(f"任务失败处理出错: {task_id}, {hook_error}")
                    return
                attempt += 1
                delay = self.retry_backoff * attempt
                logger.warning(f"任务执行异常，{delay:.1f}s 后第 {attempt} 次重试: {task_id}, {e}")
                await asyncio.sleep(delay)
