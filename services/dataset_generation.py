import asyncio
from typing import Dict
from database.file_manager import FileManager, DISTILL_CHUNK_NAME
from database.project_manager import ProjectManager
from database.question_manager import QuestionManager
from services.errors import ParameterError
from services.llm_client import create_llm_client
from services.prompts import answer_prompt
from utils.logger import get_logger

logger = get_logger('dataset_generation', 'business')

question_manager = QuestionManager()
file_manager = FileManager()
project_manager = ProjectManager()


async def generate_dataset_for_question(project_id: str, question_id: str, model: Dict,
                                        language: str = 'zh-CN') -> Dict:
    """
    为问题生成答案并保存为数据集条目

    问题来自普通文本块时把文本块内容作为参考，蒸馏问题直接回答。
    """
    if not model:
        raise ParameterError("缺少必要参数: model")
    question = await asyncio.to_thread(question_manager.get_question, question_id)
    if not question or question['project_id'] != project_id:
        raise ParameterError(f"问题不存在: {question_id}")

    context = ''
    chunk = await asyncio.to_thread(file_manager.get_chunk, question['chunk_id'])
    if chunk and chunk['name'] != DISTILL_CHUNK_NAME:
        context = chunk['content']
    project = await asyncio.to_thread(project_manager.get_project, project_id)

    client = create_llm_client(model)
    prompt = answer_prompt(question['question'], context, language, (project or {}).get('global_prompt') or '')
    result = await client.get_response_with_cot(prompt)

    dataset = await asyncio.to_thread(
        question_manager.save_dataset, project_id, question, result['answer'], result['cot'], client.model_name
    )
    logger.info(f"数据集生成完成: question={question_id}")
    return dataset
