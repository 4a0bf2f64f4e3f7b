from sqlalchemy import desc
from typing import List, Optional, Dict, Tuple
from datetime import datetime
from database.base import DatabaseManager
from database.models import Task, TaskStatus, TaskType
from services.errors import ParameterError
from utils.logger import get_logger

logger = get_logger('task_manager', 'business')

# 允许通过 update_task 修改的字段
UPDATABLE_FIELDS = (
    'status', 'detail', 'note', 'total_count', 'completed_count',
    'model_info', 'language', 'start_time', 'end_time'
)


class TaskManager(DatabaseManager):
    """任务数据库管理器"""

    def create_task(self, project_id: str, task_type: str, model_info: Optional[str] = None,
                    language: str = 'zh-CN', detail: str = '', note: Optional[str] = None,
                    total_count: int = 0) -> Dict:
        """创建新任务，初始状态为运行中"""
        if not project_id:
            raise ParameterError("缺少必要参数: projectId")
        if task_type not in TaskType.ALL:
            raise ParameterError(f"无效的任务类型: {task_type}，有效类型: {list(TaskType.ALL)}")

        try:
            with self.session_scope() as db:
                task = Task(
                    project_id=project_id,
                    task_type=task_type,
                    status=TaskStatus.RUNNING,
                    model_info=model_info,
                    language=language or 'zh-CN',
                    detail=detail or '',
                    note=note,
                    total_count=max(0, int(total_count or 0)),
                    completed_count=0,
                    start_time=datetime.now()
                )
                db.add(task)
                db.flush()
                result = task.to_dict()
            logger.info(f"创建任务成功: type={task_type}, ID: {result['id']}")
            return result
        except Exception as e:
            logger.error(f"创建任务失败: {e}")
            raise

    def update_task(self, task_id: str, **fields) -> Optional[Dict]:
        """
        更新任务字段

        已处于终态（完成/失败/中断）的任务不再接受任何写入，返回 None。
        这样用户中断后，仍在运行的处理步骤不会把状态覆盖回去。
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ParameterError(f"不支持更新的任务字段: {sorted(unknown)}")

        try:
            with self.session_scope() as db:
                task = db.query(Task).filter(Task.id == task_id).first()
                if not task:
                    logger.error(f"任务不存在: ID={task_id}")
                    return None
                if task.status in TaskStatus.TERMINAL:
                    logger.warning(f"任务已结束(status={task.status})，忽略本次更新: ID={task_id}")
                    return None

                for key, value in fields.items():
                    setattr(task, key, value)
                task.update_at = datetime.now()
                db.flush()
                result = task.to_dict()

            logger.debug(f"更新任务: ID={task_id}, status={result['status']}, "
                         f"completed={result['completed_count']}/{result['total_count']}")
            return result
        except Exception as e:
            logger.error(f"更新任务失败: ID={task_id}, {e}")
            raise

    def update_task_status(self, task_id: str, status: int) -> Optional[Dict]:
        """
        仅修改状态，用于用户中断任务

        只有运行中的任务可以被修改，返回 None 表示任务不存在或已结束。
        """
        if status not in TaskStatus.ALL:
            raise ParameterError(f"无效的任务状态: {status}")

        with self.session_scope() as db:
            task = db.query(Task).filter(Task.id == task_id).first()
            if not task:
                logger.warning(f"任务不存在: ID={task_id}")
                return None
            if task.status in TaskStatus.TERMINAL:
                logger.warning(f"任务已结束，无法修改状态: ID={task_id}, status={task.status}")
                return None
            task.status = status
            if status in TaskStatus.TERMINAL:
                task.end_time = datetime.now()
            db.flush()
            result = task.to_dict()

        logger.info(f"更新任务状态: ID={task_id}, status={status}")
        return result

    def get_task(self, task_id: str) -> Optional[Dict]:
        """根据ID获取任务"""
        with self.session_scope() as db:
            task = db.query(Task).filter(Task.id == task_id).first()
            if task:
                return task.to_dict()
        logger.warning(f"任务不存在: ID={task_id}")
        return None

    def list_tasks(self, project_id: str, task_type: Optional[str] = None, status: Optional[int] = None,
                   page: int = 0, limit: int = 10) -> Tuple[List[Dict], int]:
        """分页获取项目任务列表，按创建时间倒序"""
        with self.session_scope() as db:
            query = db.query(Task).filter(Task.project_id == project_id)
            if task_type:
                query = query.filter(Task.task_type == task_type)
            if status is not None:
                query = query.filter(Task.status == status)

            total = query.count()
            tasks = (query.order_by(desc(Task.create_at))
                     .offset(max(0, page) * limit)
                     .limit(limit)
                     .all())
            result = [task.to_dict() for task in tasks]

        logger.info(f"获取任务列表成功: project={project_id}, 共 {total} 个任务")
        return result, total

    def get_running_tasks(self, project_id: Optional[str] = None) -> List[Dict]:
        """获取运行中的任务，服务重启后用于恢复队列"""
        with self.session_scope() as db:
            query = db.query(Task).filter(Task.status == TaskStatus.RUNNING)
            if project_id:
                query = query.filter(Task.project_id == project_id)
            return [task.to_dict() for task in query.order_by(Task.create_at).all()]

    def delete_task(self, task_id: str) -> bool:
        """删除任务"""
        with self.session_scope() as db:
            task = db.query(Task).filter(Task.id == task_id).first()
            if not task:
                logger.warning(f"任务不存在: ID={task_id}")
                return False
            db.delete(task)
        logger.info(f"删除任务成功: ID={task_id}")
        return True
