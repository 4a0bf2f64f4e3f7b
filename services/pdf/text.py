import asyncio
import os
from typing import Any, Dict
from langchain_community.document_loaders import Docx2txtLoader
from services.pdf.base import PdfStrategy


def load_docx(path: str) -> str:
    docs = Docx2txtLoader(path).load()
    return '\n\n'.join(doc.page_content for doc in docs)


def read_text(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


class TextStrategy(PdfStrategy):
    """非 PDF 文档：md / txt 直接读取，docx 提取正文"""

    name = 'text'

    async def convert(self, project_id: str, file_name: str, options: Dict) -> Dict[str, Any]:
        path = self.source_path(project_id, file_name)
        ext = os.path.splitext(file_name)[1].lower()
        if ext == '.docx':
            content = await asyncio.to_thread(load_docx, path)
        elif ext in ('.md', '.txt'):
            content = await asyncio.to_thread(read_text, path)
        else:
            raise ValueError(f"不支持的文件类型: {ext}")
        if ext == '.md':
            return {'file_name': file_name, 'length': len(content), 'pages': 1}
        data = self.save_markdown(project_id, file_name, content)
        data['pages'] = 1
        return data
