import asyncio
import random
from typing import Dict, List, Optional
from database.file_manager import FileManager
from database.project_manager import ProjectManager
from database.question_manager import QuestionManager
from database.tag_manager import TagManager
from services.errors import ParameterError, ParseError
from services.llm_client import create_llm_client
from services.prompts import chunk_questions_prompt, add_label_prompt
from utils.json_utils import extract_json, parse_string_list
from utils.logger import get_logger

logger = get_logger('question_generation', 'business')

file_manager = FileManager()
project_manager = ProjectManager()
question_manager = QuestionManager()
tag_manager = TagManager()


def random_remove_question_mark(questions: List[str], probability: float) -> List[str]:
    """按概率(0-100)去掉问题末尾的问号"""
    result = []
    for question in questions:
        question = question.rstrip()
        if random.random() * 100 < probability and question.endswith(('?', '？')):
            question = question[:-1]
        result.append(question)
    return result


def _assign_labels(questions: List[str], reply: str, default_label: str) -> List[Dict]:
    parsed = extract_json(reply)
    labels = {}
    if isinstance(parsed, list):
        for item in parsed:
            if isinstance(item, dict) and item.get('question'):
                labels[item['question']] = item.get('label') or default_label
    return [{'question': q, 'label': labels.get(q, default_label)} for q in questions]


async def generate_questions_for_chunk(project_id: str, chunk_id: str, model: Dict, language: str = 'zh-CN',
                                       number: Optional[int] = None) -> Dict:
    """为文本块生成问题，并从项目标签中为每个问题选择标签"""
    if not model:
        raise ParameterError("缺少必要参数: model")
    chunk = await asyncio.to_thread(file_manager.get_chunk, chunk_id)
    if not chunk or chunk['project_id'] != project_id:
        raise ParameterError(f"文本块不存在: {chunk_id}")

    config = await asyncio.to_thread(project_manager.get_task_config, project_id)
    project = await asyncio.to_thread(project_manager.get_project, project_id) or {}
    count = number or max(1, len(chunk['content']) // int(config['questionGenerationLength']))

    client = create_llm_client(model)
    prompt = chunk_questions_prompt(chunk['content'], count, language,
                                    project.get('global_prompt') or '', project.get('question_prompt') or '')
    questions = parse_string_list(await client.get_response(prompt))
    if not questions:
        raise ParseError("生成问题失败")
    questions = random_remove_question_mark(questions, float(config['questionMaskRemovingProbability']))

    default_label = 'Other' if language == 'en' else '其他'
    tags = await asyncio.to_thread(tag_manager.get_tags, project_id)
    if tags:
        label_reply = await client.get_response(add_label_prompt(tags, questions, language))
        labeled = _assign_labels(questions, label_reply, default_label)
    else:
        labeled = [{'question': q, 'label': default_label} for q in questions]

    saved = await asyncio.to_thread(question_manager.save_questions, project_id, chunk_id, labeled)
    return {'chunk_id': chunk_id, 'questions': saved, 'total': len(saved)}
