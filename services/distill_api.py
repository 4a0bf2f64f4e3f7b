import asyncio
from typing import Any, Dict, List, Optional
import httpx
from config import DISTILL_CONFIG
from database.question_manager import QuestionManager
from database.tag_manager import TagManager
from services import distill_generation
from services.dataset_generation import generate_dataset_for_question
from services.errors import ExternalServiceError
from utils.logger import get_logger

logger = get_logger('distill_api', 'business')


class LocalDistillApi:
    """在服务进程内直接调用蒸馏相关服务"""

    def __init__(self):
        self.tag_manager = TagManager()
        self.question_manager = QuestionManager()

    async def get_all_tags(self, project_id: str) -> List[Dict]:
        return await asyncio.to_thread(self.tag_manager.get_tags, project_id)

    async def generate_tags(self, project_id: str, parent_tag: str, parent_tag_id: Optional[str], tag_path: str,
                            count: int, model: Dict, language: str) -> List[Dict]:
        return await distill_generation.generate_tags(project_id, parent_tag, parent_tag_id, tag_path,
                                                      count, model, language)

    async def get_distill_questions(self, project_id: str) -> List[Dict]:
        return await asyncio.to_thread(self.question_manager.get_distill_questions, project_id)

    async def generate_questions(self, project_id: str, tag_path: str, current_tag: str, tag_id: Optional[str],
                                 count: int, model: Dict, language: str) -> List[Dict]:
        return await distill_generation.generate_questions(project_id, tag_path, current_tag, tag_id,
                                                           count, model, language)

    async def generate_dataset(self, project_id: str, question_id: str, model: Dict, language: str) -> Dict:
        return await generate_dataset_for_question(project_id, question_id, model, language)


class HttpDistillApi:
    """
    通过 REST 接口调用运行中的服务

    Args:
        base_url: 服务地址，默认取 DISTILL_CONFIG['api_base_url']
        client: 可注入的 httpx.AsyncClient（测试使用）
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.http_client = client or httpx.AsyncClient(
            base_url=base_url or DISTILL_CONFIG['api_base_url'],
            timeout=timeout or DISTILL_CONFIG['timeout']
        )

    async def close(self):
        await self.http_client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self.http_client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"请求失败: {method} {url}, {e}") from e
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 or body.get('code', 0) != 0:
            message = body.get('message') or response.text
            raise ExternalServiceError(f"{method} {url} 返回错误({response.status_code}): {message}")
        return body.get('data')

    async def get_all_tags(self, project_id: str) -> List[Dict]:
        return await self._request('GET', f"/projects/{project_id}/distill/tags/all")

    async def generate_tags(self, project_id: str, parent_tag: str, parent_tag_id: Optional[str], tag_path: str,
                            count: int, model: Dict, language: str) -> List[Dict]:
        return await self._request('POST', f"/projects/{project_id}/distill/tags", json={
            'parentTag': parent_tag,
            'parentTagId': parent_tag_id,
            'tagPath': tag_path,
            'count': count,
            'model': model,
            'language': language
        })

    async def get_distill_questions(self, project_id: str) -> List[Dict]:
        return await self._request('GET', f"/projects/{project_id}/questions/tree", params={'isDistill': 'true'})

    async def generate_questions(self, project_id: str, tag_path: str, current_tag: str, tag_id: Optional[str],
                                 count: int, model: Dict, language: str) -> List[Dict]:
        return await self._request('POST', f"/projects/{project_id}/distill/questions", json={
            'tagPath': tag_path,
            'currentTag': current_tag,
            'tagId': tag_id,
            'count': count,
            'model': model,
            'language': language
        })

    async def generate_dataset(self, project_id: str, question_id: str, model: Dict, language: str) -> Dict:
        return await self._request('POST', f"/projects/{project_id}/datasets", json={
            'questionId': question_id,
            'model': model,
            'language': language
        })
