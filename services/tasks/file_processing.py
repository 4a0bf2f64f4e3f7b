import asyncio
import json
import os
from typing import Dict, List, Optional
from database.file_manager import get_project_files_dir
from database.models import TaskStatus, TaskType
from database.project_manager import ProjectManager
from database.task_manager import TaskManager
from services.domain_tree import handle_domain_tree
from services.errors import (
    DomainTreeError, PageCountProbeError, ParameterError, SplitError, StrategyProcessingError
)
from services.pdf import count_pages, get_strategy
from services.progress import PdfTaskProgress, ProgressReporter
from services.text_splitter import split_project_file
from utils.logger import get_logger, get_task_logger

logger = get_logger('file_processing', 'business')

project_manager = ProjectManager()


def parse_json_field(value) -> Optional[Dict]:
    if not value:
        return None
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as e:
        raise ParameterError(f"JSON 解析失败: {e}") from e
    return parsed if isinstance(parsed, dict) else None


def normalize_file(file: Dict) -> Dict:
    file_name = file.get('fileName') or file.get('file_name')
    if not file_name:
        raise ParameterError(f"文件信息缺少 fileName: {file}")
    return {
        'file_id': file.get('fileId') or file.get('file_id') or file.get('id'),
        'file_name': file_name,
        'action': file.get('action')
    }


def parse_file_task_note(task: Dict) -> Dict:
    """解析文件处理任务参数，缺少 projectId 或文件列表时抛出 ParameterError"""
    try:
        params = json.loads(task.get('note') or '{}')
    except ValueError as e:
        raise ParameterError(f"任务参数解析失败: {e}") from e
    if not isinstance(params, dict):
        raise ParameterError("任务参数格式不正确")

    project_id = params.get('projectId') or task.get('project_id')
    raw_files = params.get('fileList') or ([params['file']] if params.get('file') else [])
    if not project_id or not raw_files:
        raise ParameterError("缺少必要参数: projectId 或 fileList")

    files = [normalize_file(f) for f in raw_files]
    action = params.get('domainTreeAction') or files[0].get('action') or 'rebuild'
    return {
        'project_id': project_id,
        'files': files,
        'strategy': params.get('strategy') or 'default',
        'action': action,
        'options': params.get('options') or {},
        'text_model': parse_json_field(params.get('textModel'))
    }


async def _probe_pages(project_id: str, files: List[Dict]) -> List[int]:
    counts = []
    files_dir = get_project_files_dir(project_id)
    for file in files:
        try:
            pages = await asyncio.to_thread(count_pages, os.path.join(files_dir, file['file_name']))
        except PageCountProbeError as e:
            logger.warning(f"{e}，该文件不计入总页数")
            pages = 0
        counts.append(pages)
    return counts


async def _resolve_vision_model(task: Dict, options: Dict) -> Optional[Dict]:
    vision_model_id = options.get('visionModelId')
    if vision_model_id:
        model = await asyncio.to_thread(project_manager.get_model_config_by_id, vision_model_id)
        if model:
            return model
    return parse_json_field(task.get('model_info'))


async def process_file_task(task: Dict, context) -> None:
    """
    文件处理任务（pdf-processing / text-processing）

    文件依次处理；单个文件转换或分割失败记录到 errorList 后继续。每个文件结束后
    completed_count 累加该文件页数。全部文件处理后按 domainTreeAction 更新领域树，
    非 keep 操作失败时任务置为失败。
    """
    reporter = ProgressReporter(task, context.task_manager, context.events)
    log = get_task_logger(logger, task['id'])
    progress = PdfTaskProgress()
    try:
        params = parse_file_task_note(task)
        project_id = params['project_id']
        files = params['files']
        if task['task_type'] == TaskType.PDF_PROCESSING:
            pdf_strategy = get_strategy(params['strategy'])
        else:
            pdf_strategy = get_strategy('text')
        text_strategy = get_strategy('text')

        page_counts = await _probe_pages(project_id, files)
        progress.total_files = len(files)
        progress.step_info = '开始处理文件'
        await reporter.start(sum(page_counts), progress)

        task_config = await asyncio.to_thread(project_manager.get_task_config, project_id)
        vision_model = None
        if params['strategy'] == 'vision':
            vision_model = await _resolve_vision_model(task, params['options'])

        completed = 0
        toc_parts = []
        for index, (file, pages) in enumerate(zip(files, page_counts)):
            if await reporter.is_cancelled():
                log.info("任务已中断，停止处理")
                await reporter.cancelled()
                return

            file_name = file['file_name']
            progress.current_file = file_name
            progress.current_file_total_pages = pages
            progress.current_file_processed_pages = 0
            progress.step_info = f"正在处理 {file_name}"
            await reporter.report(completed, progress)

            base = completed

            async def on_progress(current: int, total: int, base=base, pages=pages):
                progress.current_file_processed_pages = current
                await reporter.report(base + min(current, pages), progress)

            strategy = pdf_strategy if file_name.lower().endswith('.pdf') else text_strategy
            result = await strategy.process(project_id, file_name, {
                **params['options'],
                'task_id': task['id'],
                'language': task.get('language'),
                'vision_model': vision_model,
                'vision_concurrency_limit': task_config['visionConcurrencyLimit'],
                'on_progress': on_progress
            })

            if result.success:
                try:
                    split = await split_project_file(project_id, file)
                    toc_parts.append(split['toc'])
                    progress.finished_files.append(file_name)
                except SplitError as e:
                    progress.errors.append(str(e))
            else:
                progress.errors.append(f"{file_name}: {result.error}")

            completed += pages
            progress.processed_files = index + 1
            progress.current_file_processed_pages = pages
            await reporter.report(completed, progress)

        if await reporter.is_cancelled():
            log.info("任务已中断，跳过领域树")
            await reporter.cancelled()
            return

        if not progress.finished_files:
            raise StrategyProcessingError(f"所有文件处理失败: {'; '.join(progress.errors)}")

        if params['action'] != 'keep':
            progress.step_info = '正在构建领域树'
            await reporter.report(completed, progress)
            model = params['text_model'] or parse_json_field(task.get('model_info'))
            tags = await handle_domain_tree(
                project_id, '\n'.join(t for t in toc_parts if t), model, task.get('language'),
                params['action'], files
            )
            if not tags:
                raise DomainTreeError('AI analysis failed, please check model configuration, delete file and retry!')

        progress.step_info = (f"处理完成: 成功 {len(progress.finished_files)} 个文件，"
                              f"失败 {len(progress.errors)} 个")
        await reporter.finish(TaskStatus.COMPLETED, progress)
    except Exception as e:
        log.error(f"文件处理任务失败: {e}")
        progress.step_info = f"处理失败: {e}"
        if str(e) not in progress.errors:
            progress.errors.append(str(e))
        await reporter.finish(TaskStatus.FAILED, progress)
