import asyncio
from dataclasses import dataclass, asdict, field
from typing import Callable, Dict, List, Optional, Set, Union
from database.models import TaskStatus, TaskType
from utils.logger import get_logger

logger = get_logger('events', 'app')

PROCESSING_TASK_TYPES = (TaskType.PDF_PROCESSING, TaskType.TEXT_PROCESSING)


@dataclass
class TaskStatusEvent:
    """任务状态变化（开始、完成、失败、中断）"""
    project_id: str
    task_id: str
    task_type: str
    status: int
    message: str = ''
    event: str = field(default='task-status', init=False)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class TaskProgressEvent:
    """任务进度更新"""
    project_id: str
    task_id: str
    task_type: str
    completed_count: int
    total_count: int
    detail: Dict = field(default_factory=dict)
    event: str = field(default='task-progress', init=False)

    def to_dict(self) -> Dict:
        return asdict(self)


TaskEvent = Union[TaskStatusEvent, TaskProgressEvent]


class EventBus:
    """
    进程内任务事件发布/订阅

    订阅者回调在 publish 调用方的控制流中同步执行；流式消费者通过
    subscribe_queue 获取独立队列。
    """

    def __init__(self, queue_size: int = 100):
        self._callbacks: List[Callable[[TaskEvent], None]] = []
        self._queues: List[asyncio.Queue] = []
        self._queue_size = queue_size
        # project_id -> 正在处理文档的任务ID
        self._processing: Dict[str, Set[str]] = {}

    def subscribe(self, callback: Callable[[TaskEvent], None]) -> Callable[[], None]:
        """注册回调，返回取消订阅函数"""
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def subscribe_queue(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self._queue_size)
        self._queues.append(queue)
        return queue

    def unsubscribe_queue(self, queue: asyncio.Queue):
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: TaskEvent):
        if isinstance(event, TaskStatusEvent) and event.task_type in PROCESSING_TASK_TYPES:
            running = self._processing.setdefault(event.project_id, set())
            if event.status == TaskStatus.RUNNING:
                running.add(event.task_id)
            else:
                running.discard(event.task_id)

        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"事件回调执行失败: {e}")

        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"事件队列已满，丢弃事件: {event.event} task={event.task_id}")

    def is_processing(self, project_id: str) -> bool:
        """项目是否有正在进行的文档处理任务"""
        return bool(self._processing.get(project_id))

    def processing_tasks(self, project_id: Optional[str] = None) -> List[str]:
        if project_id:
            return sorted(self._processing.get(project_id, set()))
        return sorted(task_id for ids in self._processing.values() for task_id in ids)

    def clear(self):
        self._callbacks.clear()
        self._queues.clear()
        self._processing.clear()
