import asyncio
import json
from typing import Optional
from fastapi import APIRouter, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse
from database import TaskManager, TaskStatus
from schemas import TaskCreateRequest, TaskStatusUpdateRequest
from services.context import AppContext
from services.errors import ParameterError
from services.events import TaskStatusEvent
from utils.logger import get_logger
from utils.response import success, error, paginated

router = APIRouter(prefix="/projects/{project_id}/tasks", tags=["Task"])

logger = get_logger('tasks_router', 'app')

# 创建任务管理器实例
task_manager = TaskManager()


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _to_json_text(value) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


async def _get_project_task(project_id: str, task_id: str) -> dict:
    task = await asyncio.to_thread(task_manager.get_task, task_id)
    if not task or task['project_id'] != project_id:
        raise HTTPException(status_code=404, detail="任务不存在")
    return task


@router.post("", summary="创建任务")
async def create_task(project_id: str, body: TaskCreateRequest, request: Request):
    """
    创建后台任务并加入任务队列，立即返回任务记录
    """
    task = await asyncio.to_thread(
        task_manager.create_task,
        project_id,
        body.task_type,
        _to_json_text(body.model_info),
        body.language,
        body.detail,
        _to_json_text(body.note),
        body.total_count
    )
    await get_context(request).submit(task['id'])
    return success(task, message="任务创建成功")


@router.get("/list", summary="获取任务列表")
async def list_tasks(project_id: str,
                     task_type: Optional[str] = Query(None, alias="taskType"),
                     status: Optional[int] = Query(None),
                     page: int = Query(0, ge=0),
                     limit: int = Query(10, ge=1, le=200)):
    """
    分页获取项目任务，按创建时间倒序
    """
    try:
        items, total = await asyncio.to_thread(task_manager.list_tasks, project_id, task_type, status, page, limit)
        return paginated(items, total, page, limit)
    except Exception as e:
        logger.error(f"获取任务列表失败: {e}")
        return error(message=f"获取任务列表失败: {str(e)}", code=500)


@router.get("/events", summary="订阅任务事件")
async def task_events(project_id: str, request: Request):
    """
    以 SSE 推送项目任务的进度与状态变化
    """
    context = get_context(request)
    queue = context.events.subscribe_queue()

    async def event_generator():
        yield {"event": "processing", "data": json.dumps({
            "processing": context.events.is_processing(project_id),
            "tasks": context.events.processing_tasks(project_id)
        })}
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30)
                except asyncio.TimeoutError:
                    yield {"event": "ping", "data": ""}
                    continue
                if event.project_id != project_id:
                    continue
                yield {"event": event.event, "data": json.dumps(event.to_dict(), ensure_ascii=False)}
        finally:
            context.events.unsubscribe_queue(queue)

    return EventSourceResponse(event_generator())


@router.get("/{task_id}", summary="获取指定任务")
async def get_task(project_id: str, task_id: str):
    task = await _get_project_task(project_id, task_id)
    return success(task)


@router.patch("/{task_id}", summary="修改任务状态")
async def update_task_status(project_id: str, task_id: str, body: TaskStatusUpdateRequest, request: Request):
    """
    仅修改任务状态，用于用户中断任务（status=3），并向订阅者发布状态事件
    """
    await _get_project_task(project_id, task_id)
    if body.status == TaskStatus.RUNNING:
        raise ParameterError("不能把任务状态修改为运行中")
    task = await asyncio.to_thread(task_manager.update_task_status, task_id, body.status)
    if not task:
        return error(message="任务已结束，无法修改状态", code=400)
    get_context(request).events.publish(TaskStatusEvent(
        project_id, task_id, task['task_type'], task['status'],
        "任务已中断" if task['status'] == TaskStatus.ABORTED else ""
    ))
    return success(task, message="任务状态已更新")


@router.delete("/{task_id}", summary="删除任务")
async def delete_task(project_id: str, task_id: str, request: Request):
    task = await _get_project_task(project_id, task_id)
    await asyncio.to_thread(task_manager.delete_task, task_id)
    # 运行中的任务被删除按中断处理
    if task['status'] == TaskStatus.RUNNING:
        get_context(request).events.publish(TaskStatusEvent(
            project_id, task_id, task['task_type'], TaskStatus.ABORTED, "任务已删除"
        ))
    return success(message="任务已删除")
