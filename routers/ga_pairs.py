import asyncio
from fastapi import APIRouter, HTTPException
from database import FileManager
from schemas import GaPairGenerateRequest, GaPairBatchRequest, GaPairSaveRequest, GaPairToggleRequest
from services.ga_pairs import (
    batch_generate_ga_pairs,
    generate_ga_pairs_for_file,
    list_ga_pairs,
    save_ga_pairs,
    toggle_ga_pair
)
from utils.logger import get_logger
from utils.response import success

router = APIRouter(prefix="/projects/{project_id}", tags=["GaPairs"])

logger = get_logger('ga_pairs_router', 'app')

file_manager = FileManager()


async def _check_file(project_id: str, file_id: str):
    file = await asyncio.to_thread(file_manager.get_file, file_id)
    if not file or file['project_id'] != project_id:
        raise HTTPException(status_code=404, detail="文件不存在")
    return file


@router.post("/files/{file_id}/ga-pairs", summary="为文件生成 GA 对")
async def generate_file_ga_pairs(project_id: str, file_id: str, body: GaPairGenerateRequest):
    await _check_file(project_id, file_id)
    result = await generate_ga_pairs_for_file(
        project_id, file_id, body.model_config_id, body.language,
        regenerate=body.regenerate, append_mode=body.append_mode
    )
    return success(result['gaPairs'], message=result['message'], skipped=result['skipped'])


@router.get("/files/{file_id}/ga-pairs", summary="获取文件 GA 对")
async def get_file_ga_pairs(project_id: str, file_id: str):
    await _check_file(project_id, file_id)
    return success(await list_ga_pairs(project_id, file_id))


@router.put("/files/{file_id}/ga-pairs", summary="保存文件 GA 对")
async def put_file_ga_pairs(project_id: str, file_id: str, body: GaPairSaveRequest):
    await _check_file(project_id, file_id)
    pairs = [{
        'genre': item.genre.model_dump(),
        'audience': item.audience.model_dump(),
        'is_active': item.is_active
    } for item in body.ga_pairs]
    return success(await save_ga_pairs(project_id, file_id, pairs), message="GA 对已保存")


@router.patch("/files/{file_id}/ga-pairs", summary="启用或停用 GA 对")
async def patch_file_ga_pair(project_id: str, file_id: str, body: GaPairToggleRequest):
    await _check_file(project_id, file_id)
    pair = await toggle_ga_pair(project_id, file_id, body.pair_id, body.is_active)
    if not pair:
        raise HTTPException(status_code=404, detail="GA 对不存在")
    return success(pair)


@router.post("/ga-pairs/batch-generate", summary="批量生成 GA 对")
async def batch_generate(project_id: str, body: GaPairBatchRequest):
    files = [{'id': file_id} for file_id in body.file_ids]
    results = await batch_generate_ga_pairs(
        project_id, files, body.model_config_id, body.language, append_mode=body.append_mode
    )
    succeeded = sum(1 for r in results if r['success'])
    logger.info(f"批量生成 GA 对: project={project_id}, 成功 {succeeded}/{len(results)}")
    return success(results, summary={
        'total': len(results),
        'success': succeeded,
        'failed': len(results) - succeeded,
        'skipped': sum(1 for r in results if r.get('skipped'))
    })
