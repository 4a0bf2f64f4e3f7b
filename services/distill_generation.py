import asyncio
from typing import Dict, List, Optional
from database.file_manager import FileManager
from database.project_manager import ProjectManager
from database.question_manager import QuestionManager
from database.tag_manager import TagManager
from services.errors import ParameterError, ParseError
from services.llm_client import create_llm_client
from services.prompts import distill_tags_prompt, distill_questions_prompt
from utils.json_utils import parse_string_list
from utils.logger import get_logger

logger = get_logger('distill_generation', 'business')

tag_manager = TagManager()
file_manager = FileManager()
question_manager = QuestionManager()
project_manager = ProjectManager()


async def _global_prompt(project_id: str) -> str:
    project = await asyncio.to_thread(project_manager.get_project, project_id)
    return (project or {}).get('global_prompt') or ''


async def generate_tags(project_id: str, parent_tag: str, parent_tag_id: Optional[str], tag_path: str,
                        count: int, model: Dict, language: str = 'zh-CN') -> List[Dict]:
    """为父标签生成 count 个子标签并保存"""
    if not parent_tag:
        raise ParameterError("缺少必要参数: parentTag")
    if not model:
        raise ParameterError("缺少必要参数: model")

    siblings = await asyncio.to_thread(tag_manager.get_child_tags, project_id, parent_tag_id)
    existing = [tag['label'] for tag in siblings]

    prompt = distill_tags_prompt(tag_path or parent_tag, parent_tag, existing, count, language,
                                 await _global_prompt(project_id))
    reply = await create_llm_client(model).get_response(prompt)
    labels = [label for label in parse_string_list(reply) if label not in existing]
    if not labels:
        raise ParseError("未能从模型回复中解析出标签")

    tags = await asyncio.to_thread(tag_manager.create_tags, project_id, labels[:count], parent_tag_id)
    logger.info(f"蒸馏标签生成完成: parent={parent_tag}, 共 {len(tags)} 个")
    return tags


async def generate_questions(project_id: str, tag_path: str, current_tag: str, tag_id: Optional[str],
                             count: int, model: Dict, language: str = 'zh-CN') -> List[Dict]:
    """为标签生成 count 个问题，保存在项目的蒸馏文本块下"""
    if not current_tag or not tag_path:
        raise ParameterError("缺少必要参数: currentTag 或 tagPath")
    if not model:
        raise ParameterError("缺少必要参数: model")

    chunk = await asyncio.to_thread(file_manager.get_or_create_distill_chunk, project_id)
    existing = [q['question'] for q in
                await asyncio.to_thread(question_manager.get_questions_by_label, project_id, current_tag)]

    prompt = distill_questions_prompt(tag_path, current_tag, count, existing, language,
                                      await _global_prompt(project_id))
    reply = await create_llm_client(model).get_response(prompt)
    texts = [q for q in parse_string_list(reply) if q not in existing]
    if not texts:
        raise ParseError("未能从模型回复中解析出问题")

    questions = await asyncio.to_thread(
        question_manager.save_questions, project_id, chunk['id'],
        [{'question': text, 'label': current_tag} for text in texts[:count]]
    )
    logger.info(f"蒸馏问题生成完成: tag={current_tag}, tag_id={tag_id}, 共 {len(questions)} 个")
    return questions
