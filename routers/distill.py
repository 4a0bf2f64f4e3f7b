import asyncio
from fastapi import APIRouter, Query
from database import TagManager, QuestionManager
from schemas import DistillTagsRequest, DistillQuestionsRequest, DatasetGenerateRequest
from services.dataset_generation import generate_dataset_for_question
from services.distill_generation import generate_tags, generate_questions
from utils.response import success

router = APIRouter(prefix="/projects/{project_id}", tags=["Distill"])

tag_manager = TagManager()
question_manager = QuestionManager()


@router.post("/distill/tags", summary="生成蒸馏子标签")
async def distill_tags(project_id: str, body: DistillTagsRequest):
    tags = await generate_tags(
        project_id,
        body.parent_tag,
        body.parent_tag_id,
        body.tag_path or body.parent_tag,
        body.count,
        body.model,
        body.language
    )
    return success(tags)


@router.post("/distill/questions", summary="为标签生成蒸馏问题")
async def distill_questions(project_id: str, body: DistillQuestionsRequest):
    questions = await generate_questions(
        project_id,
        body.tag_path,
        body.current_tag,
        body.tag_id,
        body.count,
        body.model,
        body.language
    )
    return success(questions)


@router.get("/distill/tags/all", summary="获取项目全部标签")
async def all_tags(project_id: str):
    tags = await asyncio.to_thread(tag_manager.get_tags, project_id)
    return success(tags)


@router.get("/questions/tree", summary="获取问题列表")
async def question_tree(project_id: str, is_distill: bool = Query(False, alias="isDistill")):
    """
    isDistill=true 时只返回蒸馏生成的问题
    """
    if is_distill:
        questions = await asyncio.to_thread(question_manager.get_distill_questions, project_id)
    else:
        questions = await asyncio.to_thread(question_manager.get_questions, project_id)
    return success(questions)


@router.post("/datasets", summary="为问题生成数据集")
async def create_dataset(project_id: str, body: DatasetGenerateRequest):
    dataset = await generate_dataset_for_question(project_id, body.question_id, body.model, body.language)
    return success(dataset)
