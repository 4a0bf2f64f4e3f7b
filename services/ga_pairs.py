import asyncio
import inspect
from typing import Callable, Dict, List, Optional
from config import FILE_CONFIG
from database.file_manager import FileManager
from database.ga_pair_manager import GaPairManager
from database.project_manager import ProjectManager
from services.errors import ConfigurationError, ParameterError
from services.ga_generation import generate_ga_pairs
from utils.logger import get_logger

logger = get_logger('ga_pairs', 'business')

file_manager = FileManager()
ga_pair_manager = GaPairManager()
project_manager = ProjectManager()


def _pair_key(pair: Dict) -> tuple:
    def norm(value: str) -> str:
        return ' '.join((value or '').split()).casefold()

    if 'genre' in pair:
        return norm(pair['genre']['title']), norm(pair['audience']['title'])
    return norm(pair['genre_title']), norm(pair['audience_title'])


def limit_content(content: str) -> str:
    max_length = FILE_CONFIG['max_content_length']
    return content[:max_length] + '...' if len(content) > max_length else content


async def _load_model(model_config_id: str) -> Dict:
    model = await asyncio.to_thread(project_manager.get_model_config_by_id, model_config_id)
    if not model:
        raise ConfigurationError("Model configuration not found")
    return model


async def _generate_for_file(project_id: str, file: Dict, model: Dict, language: str,
                             regenerate: bool = False, append_mode: bool = False) -> Dict:
    file_id = file['id']
    existing = await asyncio.to_thread(ga_pair_manager.get_ga_pairs, project_id, file_id)
    if existing and not regenerate and not append_mode:
        logger.info(f"文件已有 GA 对，跳过: {file['file_name']}")
        return {'success': True, 'skipped': True, 'message': 'GA pairs already exist', 'gaPairs': existing}

    content = await asyncio.to_thread(file_manager.get_file_content, project_id, file_id)
    if not content:
        raise ParameterError('File content not found')

    pairs = await generate_ga_pairs(limit_content(content), project_id, model, language)

    if append_mode and existing:
        # 追加模式：与现有启用的 GA 对按体裁+受众标题去重
        known = {_pair_key(p) for p in existing if p['is_active']}
        fresh = []
        for pair in pairs:
            key = _pair_key(pair)
            if key not in known:
                known.add(key)
                fresh.append(pair)
        saved = await asyncio.to_thread(ga_pair_manager.append_ga_pairs, project_id, file_id, fresh)
        all_pairs = await asyncio.to_thread(ga_pair_manager.get_ga_pairs, project_id, file_id)
        return {'success': True, 'skipped': False,
                'message': f'Appended {len(saved)} GA pairs', 'gaPairs': all_pairs}

    saved = await asyncio.to_thread(ga_pair_manager.replace_ga_pairs, project_id, file_id, pairs)
    return {'success': True, 'skipped': False, 'message': f'Generated {len(saved)} GA pairs', 'gaPairs': saved}


async def generate_ga_pairs_for_file(project_id: str, file_id: str, model_config_id: str,
                                     language: str = 'zh-CN', regenerate: bool = False,
                                     append_mode: bool = False) -> Dict:
    """为单个文件生成 GA 对，已有时跳过（regenerate 覆盖，append_mode 追加）"""
    model = await _load_model(model_config_id)
    file = await asyncio.to_thread(file_manager.get_file, file_id)
    if not file or file['project_id'] != project_id:
        raise ParameterError(f"文件不存在: {file_id}")
    return await _generate_for_file(project_id, file, model, language, regenerate, append_mode)


async def batch_generate_ga_pairs(project_id: str, files: List[Dict], model_config_id: str,
                                  language: str = 'zh-CN', append_mode: bool = False,
                                  on_progress: Optional[Callable] = None) -> List[Dict]:
    """
    依次为多个文件生成 GA 对

    每个输入文件对应一条结果，单个文件失败不影响其他文件。
    """
    model = await _load_model(model_config_id)
    logger.info(f"开始批量生成 GA 对: project={project_id}, 共 {len(files)} 个文件")

    results = []
    for index, file in enumerate(files, start=1):
        file_id = file.get('id')
        file_name = file.get('file_name') or file.get('fileName') or ''
        try:
            record = await asyncio.to_thread(file_manager.get_file, file_id) if file_id else None
            if not record or record['project_id'] != project_id:
                raise ParameterError(f"文件不存在: {file_id}")
            file_name = record['file_name']
            result = await _generate_for_file(project_id, record, model, language, append_mode=append_mode)
        except Exception as e:
            logger.error(f"文件 GA 对生成失败: {file_name or file_id}, {e}")
            result = {'success': False, 'skipped': False, 'error': str(e), 'message': f'Failed: {e}'}
        results.append({'fileId': file_id, 'fileName': file_name, **result})

        if on_progress:
            outcome = on_progress(index, len(files))
            if inspect.isawaitable(outcome):
                await outcome

    succeeded = sum(1 for r in results if r['success'])
    logger.info(f"批量生成 GA 对完成: 成功 {succeeded}, 失败 {len(results) - succeeded}")
    return results


async def list_ga_pairs(project_id: str, file_id: str) -> List[Dict]:
    return await asyncio.to_thread(ga_pair_manager.get_ga_pairs, project_id, file_id)


async def save_ga_pairs(project_id: str, file_id: str, pairs: List[Dict]) -> List[Dict]:
    """整体替换文件的 GA 对（用户编辑后保存）"""
    for index, pair in enumerate(pairs):
        if not pair.get('genre', {}).get('title') or not pair.get('audience', {}).get('title'):
            raise ParameterError(f"第 {index + 1} 个 GA 对缺少体裁或受众标题")
    return await asyncio.to_thread(ga_pair_manager.replace_ga_pairs, project_id, file_id, pairs)


async def toggle_ga_pair(project_id: str, file_id: str, pair_id: str, is_active: bool) -> Optional[Dict]:
    return await asyncio.to_thread(ga_pair_manager.toggle_ga_pair, project_id, file_id, pair_id, is_active)
