import asyncio
import os
import re
import shutil
from typing import Any, Dict, List, Optional
import fitz  # PyMuPDF
from database.file_manager import get_project_files_dir, markdown_name
from database.models import generate_id
from services.errors import ConfigurationError
from services.llm_client import create_llm_client
from services.pdf.base import PdfStrategy
from services.prompts import vision_page_prompt, retitle_prompt
from utils.json_utils import strip_code_fence, parse_string_list
from utils.logger import get_logger

logger = get_logger('pdf_vision', 'business')

HEADING_RE = re.compile(r'^(#{1,6})\s+(.+)$', re.MULTILINE)
RENDER_DPI = 150


def check_vision_model(model: Optional[Dict]):
    """视觉模型必须存在、类型为 vision 且配置了 API Key"""
    if not model:
        raise ConfigurationError("请检查是否配置PDF转换视觉大模型")
    name = f"{model.get('model_name') or model.get('modelName') or model.get('model_id')}" \
           f"({model.get('provider_name') or model.get('providerName') or ''})"
    if model.get('type') != 'vision':
        raise ConfigurationError(f"{name} 此模型不是视觉大模型，请检查【模型配置】")
    if not (model.get('api_key') or model.get('apiKey')):
        raise ConfigurationError(f"{name} 此模型未配置API密钥，请检查【模型配置】")


def render_pages(pdf_path: str, output_dir: str, dpi: int = RENDER_DPI) -> List[str]:
    """把每一页渲染为 PNG，返回按页码排序的图片路径"""
    paths = []
    with fitz.open(pdf_path) as doc:
        for index, page in enumerate(doc):
            pix = page.get_pixmap(dpi=dpi)
            path = os.path.join(output_dir, f"page_{index + 1:04d}.png")
            pix.save(path)
            paths.append(path)
    return paths


def replace_headings(markdown: str, headings: List[str]) -> str:
    replacements = iter(headings)
    return HEADING_RE.sub(lambda _: next(replacements), markdown)


class VisionStrategy(PdfStrategy):
    """
    视觉大模型逐页识别

    页面图片写入任务独立的临时目录 <project>/files/<task_id>，并发数受
    visionConcurrencyLimit 限制；结果按原页码顺序拼接，临时目录在结束时删除。
    """

    name = 'vision'

    async def convert(self, project_id: str, file_name: str, options: Dict) -> Dict[str, Any]:
        model = options.get('vision_model')
        check_vision_model(model)

        language = options.get('language', 'zh-CN')
        limit = max(1, int(options.get('vision_concurrency_limit') or 5))
        on_progress = options.get('on_progress')

        files_dir = get_project_files_dir(project_id)
        pdf_path = self.source_path(project_id, file_name)
        temp_dir = os.path.join(files_dir, options.get('task_id') or generate_id())
        os.makedirs(temp_dir, exist_ok=True)

        try:
            images = await asyncio.to_thread(render_pages, pdf_path, temp_dir)
            total = len(images)
            client = create_llm_client(model)
            semaphore = asyncio.Semaphore(limit)
            prompt = vision_page_prompt(language)
            finished = 0

            async def convert_page(image_path: str) -> str:
                nonlocal finished
                async with semaphore:
                    with open(image_path, 'rb') as f:
                        image = f.read()
                    text = await client.vision_chat(prompt, image)
                finished += 1
                if on_progress:
                    await on_progress(finished, total)
                return strip_code_fence(text)

            logger.info(f"Vision 开始识别: {file_name}, 共 {total} 页, 并发 {limit}")
            jobs = [asyncio.ensure_future(convert_page(path)) for path in images]
            try:
                pages = await asyncio.gather(*jobs)
            except Exception:
                for job in jobs:
                    job.cancel()
                await asyncio.gather(*jobs, return_exceptions=True)
                raise
            content = await self.retitle('\n\n'.join(pages), client, language)

            md_name = markdown_name(file_name)
            temp_md = os.path.join(temp_dir, md_name)
            with open(temp_md, 'w', encoding='utf-8') as f:
                f.write(content)
            shutil.copyfile(temp_md, os.path.join(files_dir, md_name))
            return {'file_name': md_name, 'length': len(content), 'pages': total}
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    @staticmethod
    async def retitle(markdown: str, client, language: str) -> str:
        """调整标题层级，回复不可用时保留原标题"""
        headings = [match.group(0) for match in HEADING_RE.finditer(markdown)]
        if not headings:
            return markdown
        try:
            reply = await client.get_response(retitle_prompt(headings, language))
        except Exception as e:
            logger.warning(f"标题层级优化失败，保留原标题: {e}")
            return markdown
        fixed = [h for h in parse_string_list(reply) if HEADING_RE.fullmatch(h)]
        if len(fixed) != len(headings):
            logger.warning(f"标题层级优化结果数量不匹配({len(fixed)}/{len(headings)})，保留原标题")
            return markdown
        return replace_headings(markdown, fixed)
