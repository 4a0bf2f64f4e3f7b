import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from database.models import TaskStatus
from database.task_manager import TaskManager
from services.events import EventBus, TaskProgressEvent, TaskStatusEvent
from utils.logger import get_logger

logger = get_logger('progress', 'business')


@dataclass
class PdfTaskProgress:
    """文档处理任务（pdf-processing / text-processing）的进度记录"""
    total_files: int = 0
    processed_files: int = 0
    current_file: str = ''
    current_file_processed_pages: int = 0
    current_file_total_pages: int = 0
    finished_files: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    step_info: str = ''

    def to_dict(self) -> Dict:
        return {
            'currentFile': self.current_file,
            'currentFileProcessedPages': self.current_file_processed_pages,
            'currentFileTotalPages': self.current_file_total_pages,
            'processedFiles': self.processed_files,
            'totalFiles': self.total_files,
            'finishedList': list(self.finished_files),
            'errorList': list(self.errors),
            'stepInfo': self.step_info
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class GenerationTaskProgress:
    """生成类任务（问题、答案、蒸馏）的进度记录"""
    stage: str = ''
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    step_info: str = ''
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        payload = {
            'stage': self.stage,
            'total': self.total,
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'errorList': list(self.errors),
            'stepInfo': self.step_info
        }
        payload.update(self.extra)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


ProgressDetail = Union[PdfTaskProgress, GenerationTaskProgress, Dict, str, None]


def serialize_detail(detail: ProgressDetail) -> str:
    if detail is None:
        return ''
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict):
        return json.dumps(detail, ensure_ascii=False)
    return detail.to_json()


def _detail_dict(detail: ProgressDetail) -> Dict:
    if detail is None:
        return {}
    if isinstance(detail, str):
        return {'message': detail}
    if isinstance(detail, dict):
        return detail
    return detail.to_dict()


class ProgressReporter:
    """
    把任务进度写入任务表并发布进度事件

    计数器始终限制在 [0, total_count] 内；同一任务的写入通过锁串行化，
    视觉策略的页面回调可能并发触发。已结束的任务写入会被 TaskManager 拒绝，
    此时 report 返回 None。
    """

    def __init__(self, task: Dict, store: TaskManager, events: Optional[EventBus] = None):
        self.task_id = task['id']
        self.project_id = task['project_id']
        self.task_type = task['task_type']
        self.store = store
        self.events = events
        self.total_count = max(0, int(task.get('total_count') or 0))
        self.completed_count = 0
        self._lock = asyncio.Lock()

    def _clamp(self, value: int) -> int:
        return max(0, min(int(value), self.total_count))

    async def _write(self, **fields) -> Optional[Dict]:
        return await asyncio.to_thread(self.store.update_task, self.task_id, **fields)

    async def start(self, total_count: int, detail: ProgressDetail = None) -> Optional[Dict]:
        async with self._lock:
            self.total_count = max(0, int(total_count))
            self.completed_count = 0
            result = await self._write(
                total_count=self.total_count,
                completed_count=0,
                detail=serialize_detail(detail)
            )
        if result and self.events:
            self.events.publish(TaskStatusEvent(self.project_id, self.task_id, self.task_type, TaskStatus.RUNNING))
        return result

    async def report(self, completed_count: Optional[int] = None, detail: ProgressDetail = None,
                     total_count: Optional[int] = None) -> Optional[Dict]:
        """写入最新进度，detail 整体覆盖"""
        async with self._lock:
            if total_count is not None:
                self.total_count = max(0, int(total_count))
            if completed_count is not None:
                self.completed_count = self._clamp(completed_count)
            else:
                self.completed_count = self._clamp(self.completed_count)
            fields = {'completed_count': self.completed_count, 'total_count': self.total_count}
            if detail is not None:
                fields['detail'] = serialize_detail(detail)
            result = await self._write(**fields)

        if result is None:
            return None
        if self.events:
            self.events.publish(TaskProgressEvent(
                self.project_id, self.task_id, self.task_type,
                self.completed_count, self.total_count, _detail_dict(detail)
            ))
        return result

    async def finish(self, status: int, detail: ProgressDetail = None) -> Optional[Dict]:
        """
        把任务置为终态

        完成时 completed_count 对齐 total_count。
        """
        async with self._lock:
            fields = {'status': status, 'end_time': datetime.now()}
            if status == TaskStatus.COMPLETED:
                self.completed_count = self.total_count
            fields['completed_count'] = self._clamp(self.completed_count)
            if detail is not None:
                fields['detail'] = serialize_detail(detail)
            result = await self._write(**fields)

        if result is None:
            logger.warning(f"任务已结束，未写入最终状态: task={self.task_id}, status={status}")
            await self.cancelled()
            return None
        logger.info(f"任务结束: task={self.task_id}, status={status}")
        if self.events:
            message = detail if isinstance(detail, str) else ''
            self.events.publish(TaskStatusEvent(self.project_id, self.task_id, self.task_type, status, message))
        return result

    async def is_cancelled(self) -> bool:
        """任务是否已离开运行状态（通常是用户中断）"""
        task = await asyncio.to_thread(self.store.get_task, self.task_id)
        return task is None or task['status'] != TaskStatus.RUNNING

    async def cancelled(self) -> None:
        """
        任务在外部被结束（中断或删除）后调用，按任务表中的状态发布状态事件

        删除的任务按中断处理。
        """
        task = await asyncio.to_thread(self.store.get_task, self.task_id)
        status = task['status'] if task else TaskStatus.ABORTED
        if status == TaskStatus.RUNNING or not self.events:
            return
        message = '任务已中断' if status == TaskStatus.ABORTED else ''
        self.events.publish(TaskStatusEvent(self.project_id, self.task_id, self.task_type, status, message))
