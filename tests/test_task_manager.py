import pytest
from database import TaskStatus, TaskType
from services.errors import ParameterError


def test_create_task_starts_running(task_manager, project):
    """新建任务处于运行中，计数从 0 开始"""
    task = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING, total_count=4)

    assert task['status'] == TaskStatus.RUNNING
    assert task['completed_count'] == 0
    assert task['total_count'] == 4
    assert task['start_time'] is not None


def test_create_task_rejects_unknown_type(task_manager, project):
    with pytest.raises(ParameterError):
        task_manager.create_task(project['id'], 'video-processing')


def test_update_task_rejects_unknown_field(task_manager, project):
    task = task_manager.create_task(project['id'], TaskType.TEXT_PROCESSING)
    with pytest.raises(ParameterError):
        task_manager.update_task(task['id'], project_id='other')


def test_aborted_task_ignores_later_writes(task_manager, project):
    """
    用户中断后，处理流程的后续写入不能把任务改回其他状态
    """
    # 1. 设置
    task = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING, total_count=10)
    task_manager.update_task(task['id'], completed_count=3)

    # 2. 执行
    aborted = task_manager.update_task_status(task['id'], TaskStatus.ABORTED)
    late_progress = task_manager.update_task(task['id'], completed_count=8)
    late_status = task_manager.update_task(task['id'], status=TaskStatus.COMPLETED)

    # 3. 断言
    assert aborted['status'] == TaskStatus.ABORTED
    assert aborted['end_time'] is not None
    assert late_progress is None
    assert late_status is None
    stored = task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.ABORTED
    assert stored['completed_count'] == 3


def test_update_status_only_from_running(task_manager, project):
    task = task_manager.create_task(project['id'], TaskType.QUESTION_GENERATION)
    task_manager.update_task(task['id'], status=TaskStatus.FAILED)

    assert task_manager.update_task_status(task['id'], TaskStatus.ABORTED) is None
    assert task_manager.get_task(task['id'])['status'] == TaskStatus.FAILED


def test_update_status_rejects_invalid_value(task_manager, project):
    task = task_manager.create_task(project['id'], TaskType.QUESTION_GENERATION)
    with pytest.raises(ParameterError):
        task_manager.update_task_status(task['id'], 9)


def test_list_tasks_filters_and_pages(task_manager, project):
    for _ in range(3):
        task_manager.create_task(project['id'], TaskType.PDF_PROCESSING)
    task_manager.create_task(project['id'], TaskType.ANSWER_GENERATION)
    task_manager.create_task('another-project', TaskType.PDF_PROCESSING)

    items, total = task_manager.list_tasks(project['id'], task_type=TaskType.PDF_PROCESSING, page=0, limit=2)

    assert total == 3
    assert len(items) == 2
    assert all(item['task_type'] == TaskType.PDF_PROCESSING for item in items)
    assert all(item['project_id'] == project['id'] for item in items)


def test_get_running_tasks_and_delete(task_manager, project):
    running = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING)
    done = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING)
    task_manager.update_task(done['id'], status=TaskStatus.COMPLETED)

    assert [t['id'] for t in task_manager.get_running_tasks()] == [running['id']]
    assert task_manager.delete_task(running['id']) is True
    assert task_manager.get_task(running['id']) is None
    assert task_manager.delete_task(running['id']) is False
