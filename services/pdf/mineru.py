import asyncio
from typing import Any, Dict
import pymupdf4llm
from services.pdf.base import PdfStrategy, count_pages


class MineruStrategy(PdfStrategy):
    """版面感知的 PDF 转 Markdown（保留标题、表格结构）"""

    name = 'mineru'

    async def convert(self, project_id: str, file_name: str, options: Dict) -> Dict[str, Any]:
        path = self.source_path(project_id, file_name)
        content = await asyncio.to_thread(pymupdf4llm.to_markdown, path)
        data = self.save_markdown(project_id, file_name, content)
        data['pages'] = await asyncio.to_thread(count_pages, path)
        return data
