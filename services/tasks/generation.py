import asyncio
import json
from typing import Awaitable, Callable, Dict, List
from database.file_manager import FileManager
from database.models import TaskStatus
from database.project_manager import ProjectManager
from database.question_manager import QuestionManager
from services.auto_distill import AutoDistillService, DistillConfig
from services.dataset_generation import generate_dataset_for_question
from services.distill_api import LocalDistillApi
from services.errors import ConfigurationError, ParameterError, TaskCancelledError
from services.progress import GenerationTaskProgress, ProgressReporter
from services.question_generation import generate_questions_for_chunk
from services.tasks.file_processing import parse_json_field
from utils.logger import get_logger, get_task_logger

logger = get_logger('generation_tasks', 'business')

file_manager = FileManager()
project_manager = ProjectManager()
question_manager = QuestionManager()


def _task_model(task: Dict) -> Dict:
    model = parse_json_field(task.get('model_info'))
    if not model:
        raise ConfigurationError("任务未配置模型信息")
    return model


def _task_params(task: Dict) -> Dict:
    try:
        params = json.loads(task.get('note') or '{}')
    except ValueError as e:
        raise ParameterError(f"任务参数解析失败: {e}") from e
    return params if isinstance(params, dict) else {}


async def _run_items(task: Dict, context, stage: str, items: List[Dict], label: Callable[[Dict], str],
                     worker: Callable[[Dict], Awaitable]) -> None:
    """
    并发处理一批条目，单条失败记录后继续

    并发数取项目 concurrencyLimit，每完成一条更新一次进度。
    """
    reporter = ProgressReporter(task, context.task_manager, context.events)
    log = get_task_logger(logger, task['id'])
    progress = GenerationTaskProgress(stage=stage, total=len(items))
    await reporter.start(len(items), progress)

    config = await asyncio.to_thread(project_manager.get_task_config, task['project_id'])
    semaphore = asyncio.Semaphore(max(1, int(config['concurrencyLimit'])))

    async def run(item: Dict):
        async with semaphore:
            if await reporter.is_cancelled():
                return
            try:
                await worker(item)
                progress.succeeded += 1
            except Exception as e:
                log.error(f"[{stage}] 处理失败: {label(item)}, {e}")
                progress.failed += 1
                progress.errors.append(f"{label(item)}: {e}")
            progress.processed += 1
            await reporter.report(progress.processed, progress)

    await asyncio.gather(*[run(item) for item in items])

    if await reporter.is_cancelled():
        log.info("任务已中断")
        await reporter.cancelled()
        return
    progress.step_info = f"处理完成: 成功 {progress.succeeded}，失败 {progress.failed}"
    await reporter.finish(TaskStatus.COMPLETED, progress)


async def process_question_generation_task(task: Dict, context) -> None:
    """为项目中尚未生成问题的文本块生成问题"""
    model = _task_model(task)
    project_id = task['project_id']
    chunks = await asyncio.to_thread(file_manager.get_chunks, project_id)
    done = await asyncio.to_thread(question_manager.get_chunk_ids_with_questions, project_id)
    pending = [chunk for chunk in chunks if chunk['id'] not in done]
    logger.info(f"问题生成任务: project={project_id}, 待处理文本块 {len(pending)} 个")

    async def worker(chunk: Dict):
        await generate_questions_for_chunk(project_id, chunk['id'], model, task.get('language') or 'zh-CN')

    await _run_items(task, context, 'questions', pending, lambda c: c['name'], worker)


async def process_answer_generation_task(task: Dict, context) -> None:
    """为项目中未回答的问题生成数据集"""
    model = _task_model(task)
    project_id = task['project_id']
    pending = await asyncio.to_thread(question_manager.get_questions, project_id, False)
    logger.info(f"答案生成任务: project={project_id}, 待处理问题 {len(pending)} 个")

    async def worker(question: Dict):
        await generate_dataset_for_question(project_id, question['id'], model, task.get('language') or 'zh-CN')

    await _run_items(task, context, 'datasets', pending, lambda q: q['question'][:30], worker)


async def process_data_distillation_task(task: Dict, context) -> None:
    """
    在服务端执行自动蒸馏，进度同步到任务

    note: {"topic", "levels", "tagsPerLevel", "questionsPerTag"}
    """
    model = _task_model(task)
    params = _task_params(task)
    topic = params.get('topic')
    if not topic:
        raise ParameterError("缺少必要参数: topic")

    reporter = ProgressReporter(task, context.task_manager, context.events)
    state = {'stage': 'initializing', 'tagsTotal': 0, 'tagsBuilt': 0, 'questionsTotal': 0,
             'questionsBuilt': 0, 'datasetsTotal': 0, 'datasetsBuilt': 0}
    logs: List[str] = []
    progress = GenerationTaskProgress(stage='initializing', extra=state)
    await reporter.start(0, progress)

    async def on_progress(update: Dict):
        increment = update.get('updateType') == 'increment'
        for key, value in update.items():
            if key == 'updateType':
                continue
            if key == 'stage':
                state['stage'] = value
                progress.stage = value
            elif increment:
                state[key] = state.get(key, 0) + value
            else:
                state[key] = value
        total = state['tagsTotal'] + state['questionsTotal'] + state['datasetsTotal']
        built = state['tagsBuilt'] + state['questionsBuilt'] + state['datasetsBuilt']
        progress.total, progress.processed = total, built
        if await reporter.report(built, progress, total_count=total) is None:
            raise TaskCancelledError(f"任务已中断: {task['id']}")

    def on_log(message: str):
        logs.append(message)
        progress.step_info = message

    service = AutoDistillService(LocalDistillApi())
    try:
        await service.execute(DistillConfig(
            project_id=task['project_id'],
            topic=topic,
            levels=int(params.get('levels', 2)),
            tags_per_level=int(params.get('tagsPerLevel', 10)),
            questions_per_tag=int(params.get('questionsPerTag', 10)),
            model=model,
            language=task.get('language') or 'zh-CN',
            on_progress=on_progress,
            on_log=on_log
        ))
    except TaskCancelledError:
        get_task_logger(logger, task['id']).info("任务已中断，停止蒸馏")
        await reporter.cancelled()
        return
    progress.step_info = f"蒸馏完成: 标签 {state['tagsBuilt']}，问题 {state['questionsBuilt']}，数据集 {state['datasetsBuilt']}"
    progress.extra = {**state, 'logs': logs[-50:]}
    await reporter.finish(TaskStatus.COMPLETED, progress)
