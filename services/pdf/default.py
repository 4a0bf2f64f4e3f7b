import asyncio
from typing import Any, Dict, List
from langchain_community.document_loaders import PyPDFLoader
from services.pdf.base import PdfStrategy


def load_pdf_pages(path: str) -> List[str]:
    docs = PyPDFLoader(path).load()
    return [doc.page_content for doc in docs]


class DefaultStrategy(PdfStrategy):
    """PyPDF 逐页提取文本"""

    name = 'default'

    async def convert(self, project_id: str, file_name: str, options: Dict) -> Dict[str, Any]:
        path = self.source_path(project_id, file_name)
        pages = await asyncio.to_thread(load_pdf_pages, path)
        content = '\n\n'.join(page.strip() for page in pages if page and page.strip())
        data = self.save_markdown(project_id, file_name, content)
        data['pages'] = len(pages)
        return data
