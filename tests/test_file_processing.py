import json
from types import SimpleNamespace
import pytest
from database import TaskStatus, TaskType
from services.errors import ExternalServiceError
from services.pdf import StrategyResult
from services.tasks import process_task
from services.tasks.file_processing import parse_file_task_note, process_file_task

pytestmark = pytest.mark.asyncio

MODULE = 'services.tasks.file_processing'


@pytest.fixture
def pipeline(mocker):
    """替换页数探测、转换策略、文本分割和领域树，记录调用情况"""
    calls = []

    async def fake_process(project_id, file_name, options):
        calls.append(file_name)
        if file_name == 'a.pdf':
            await options['on_progress'](3, 5)
            return StrategyResult(True, {'file_name': 'a.md', 'length': 10})
        if file_name == 'b.pdf' and pipeline_state['fail_b']:
            return StrategyResult(False, error='页面解析失败')
        return StrategyResult(True, {'file_name': 'b.md', 'length': 10})

    pipeline_state = {'fail_b': True}
    mocker.patch(f'{MODULE}.count_pages', side_effect=lambda path: 5 if path.endswith('a.pdf') else 3)
    mocker.patch(f'{MODULE}.get_strategy', return_value=SimpleNamespace(process=fake_process))
    split = mocker.patch(f'{MODULE}.split_project_file', return_value={'toc': '- 标题', 'chunks': [], 'total_chunks': 1})
    domain_tree = mocker.patch(f'{MODULE}.handle_domain_tree', return_value=[{'id': 't1', 'label': '标题'}])
    return SimpleNamespace(calls=calls, state=pipeline_state, split=split, domain_tree=domain_tree)


async def test_partial_failure_still_completes(pipeline, context, make_file_task):
    """
    5 页 + 3 页的两个文件，第二个文件转换失败，keep 模式下任务仍然完成
    """
    # 1. 设置
    task = make_file_task(['a.pdf', 'b.pdf'], action='keep')
    progress_events = []
    context.events.subscribe(lambda e: progress_events.append(e) if e.event == 'task-progress' else None)

    # 2. 执行
    await process_file_task(task, context)

    # 3. 断言
    stored = context.task_manager.get_task(task['id'])
    detail = json.loads(stored['detail'])
    assert stored['status'] == TaskStatus.COMPLETED
    assert stored['total_count'] == 8
    assert stored['completed_count'] == 8
    assert detail['finishedList'] == ['a.pdf']
    assert detail['errorList'] == ['b.pdf: 页面解析失败']
    assert detail['processedFiles'] == 2
    assert pipeline.calls == ['a.pdf', 'b.pdf']
    assert pipeline.split.await_count == 1
    pipeline.domain_tree.assert_not_called()
    # 页面回调映射到整体进度：第一个文件第 3 页
    assert 3 in [e.completed_count for e in progress_events]
    assert all(e.completed_count <= 8 for e in progress_events)


async def test_domain_tree_failure_fails_task(pipeline, context, make_file_task):
    """rebuild 模式下领域树生成失败，任务置为失败"""
    pipeline.state['fail_b'] = False
    pipeline.domain_tree.return_value = None
    task = make_file_task(['a.pdf', 'b.pdf'], action='rebuild')

    await process_file_task(task, context)

    stored = context.task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.FAILED
    assert 'AI analysis failed' in stored['detail']
    args = pipeline.domain_tree.await_args.args
    assert args[4] == 'rebuild'
    assert args[1] == '- 标题\n- 标题'


async def test_all_files_failed_fails_task(pipeline, context, make_file_task, mocker):
    mocker.patch(f'{MODULE}.get_strategy', return_value=SimpleNamespace(
        process=mocker.AsyncMock(return_value=StrategyResult(False, error='无法读取'))
    ))
    task = make_file_task(['a.pdf', 'b.pdf'])

    await process_file_task(task, context)

    stored = context.task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.FAILED
    assert len(json.loads(stored['detail'])['errorList']) == 3


async def test_missing_file_list_fails_task(context, project, task_manager):
    task = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING, note=json.dumps({'strategy': 'default'}))

    await process_file_task(task, context)

    stored = task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.FAILED
    assert 'fileList' in stored['detail']


async def test_abort_stops_before_next_file(pipeline, context, make_file_task, mocker):
    """第一个文件处理时用户中断，后续文件不再处理，状态保持中断"""
    task = make_file_task(['a.pdf', 'b.pdf'], action='rebuild')

    async def abort_during_first(project_id, file_name, options):
        pipeline.calls.append(file_name)
        context.task_manager.update_task_status(task['id'], TaskStatus.ABORTED)
        return StrategyResult(True, {'file_name': 'a.md'})

    mocker.patch(f'{MODULE}.get_strategy', return_value=SimpleNamespace(process=abort_during_first))

    await process_file_task(task, context)

    stored = context.task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.ABORTED
    assert pipeline.calls == ['a.pdf']
    pipeline.domain_tree.assert_not_called()


async def test_unreadable_page_count_counts_as_zero(pipeline, context, make_file_task, mocker):
    from services.errors import PageCountProbeError
    mocker.patch(f'{MODULE}.count_pages', side_effect=PageCountProbeError('获取页数失败'))
    pipeline.state['fail_b'] = False
    task = make_file_task(['a.pdf', 'b.pdf'])

    await process_file_task(task, context)

    stored = context.task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.COMPLETED
    assert stored['total_count'] == 0
    assert stored['completed_count'] == 0


async def test_parse_note_prefers_explicit_domain_tree_action():
    task = {'project_id': 'p1', 'note': json.dumps({
        'fileList': [{'fileId': 'f1', 'fileName': 'a.pdf', 'action': 'append'}],
        'domainTreeAction': 'keep',
        'textModel': '{"model_id": "m"}'
    })}

    params = parse_file_task_note(task)

    assert params['action'] == 'keep'
    assert params['strategy'] == 'default'
    assert params['files'] == [{'file_id': 'f1', 'file_name': 'a.pdf', 'action': 'append'}]
    assert params['text_model'] == {'model_id': 'm'}


async def test_process_task_marks_external_error_failed_without_retry(context, project, task_manager, mocker):
    task = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING)
    mocker.patch.dict('services.tasks.TASK_PROCESSORS', {
        TaskType.PDF_PROCESSING: mocker.AsyncMock(side_effect=ExternalServiceError('模型超时'))
    })

    await process_task(task['id'], context)

    stored = task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.FAILED
    assert '模型超时' in stored['detail']


async def test_process_task_reraises_external_error_when_retrying(context, project, task_manager, mocker):
    context.queue.max_retries = 2
    task = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING)
    mocker.patch.dict('services.tasks.TASK_PROCESSORS', {
        TaskType.PDF_PROCESSING: mocker.AsyncMock(side_effect=ExternalServiceError('模型超时'))
    })

    with pytest.raises(ExternalServiceError):
        await process_task(task['id'], context)
    assert task_manager.get_task(task['id'])['status'] == TaskStatus.RUNNING


async def test_process_task_skips_finished_task(context, project, task_manager, mocker):
    task = task_manager.create_task(project['id'], TaskType.PDF_PROCESSING)
    task_manager.update_task_status(task['id'], TaskStatus.ABORTED)
    processor = mocker.AsyncMock()
    mocker.patch.dict('services.tasks.TASK_PROCESSORS', {TaskType.PDF_PROCESSING: processor})

    await process_task(task['id'], context)

    processor.assert_not_called()


async def test_abort_clears_processing_flag(pipeline, context, make_file_task, mocker):
    """
    中断后项目不再处于文档处理状态，订阅者收到中断状态事件
    """
    # 1. 设置
    task = make_file_task(['a.pdf', 'b.pdf'], action='rebuild')
    statuses = []
    context.events.subscribe(lambda e: statuses.append(e.status) if e.event == 'task-status' else None)

    async def abort_during_first(project_id, file_name, options):
        assert context.events.is_processing(task['project_id'])
        context.task_manager.update_task_status(task['id'], TaskStatus.ABORTED)
        return StrategyResult(True, {'file_name': 'a.md'})

    mocker.patch(f'{MODULE}.get_strategy', return_value=SimpleNamespace(process=abort_during_first))

    # 2. 执行
    await process_file_task(task, context)

    # 3. 断言
    assert statuses == [TaskStatus.RUNNING, TaskStatus.ABORTED]
    assert not context.events.is_processing(task['project_id'])
    assert context.events.processing_tasks(task['project_id']) == []


async def test_refused_final_write_still_clears_processing_flag(pipeline, context, make_file_task, mocker):
    """最后一个文件处理完后才中断，finish 写入被拒绝时同样发布中断事件"""
    task = make_file_task(['a.pdf'], action='keep')
    original = context.task_manager.get_task
    checks = {'count': 0}

    def abort_after_loop(task_id):
        # 领域树前的检查通过后立即中断，使 finish 被拒绝
        checks['count'] += 1
        current = original(task_id)
        if checks['count'] == 2:
            context.task_manager.update_task_status(task_id, TaskStatus.ABORTED)
        return current

    mocker.patch.object(context.task_manager, 'get_task', side_effect=abort_after_loop)

    await process_file_task(task, context)

    assert original(task['id'])['status'] == TaskStatus.ABORTED
    assert not context.events.is_processing(task['project_id'])


async def test_strategy_external_error_is_not_retried(pipeline, context, make_file_task, mocker):
    """文件转换中的外部服务异常在处理器内记录，即使允许重试也不重新执行整个任务"""
    context.queue.max_retries = 2
    mocker.patch(f'{MODULE}.get_strategy', return_value=SimpleNamespace(
        process=mocker.AsyncMock(side_effect=ExternalServiceError('模型超时'))
    ))
    task = make_file_task(['a.pdf'])

    await process_task(task['id'], context)

    stored = context.task_manager.get_task(task['id'])
    assert stored['status'] == TaskStatus.FAILED
    assert '模型超时' in stored['detail']
