import os
from dataclasses import dataclass
from typing import Any, Dict, Optional
import fitz  # PyMuPDF
from database.file_manager import get_project_files_dir, markdown_name, write_project_file
from services.errors import PageCountProbeError
from utils.logger import get_logger

logger = get_logger('pdf_strategy', 'business')


@dataclass
class StrategyResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def count_pages(path: str) -> int:
    """PDF 返回页数，其他类型按 1 页计"""
    if not path.lower().endswith('.pdf'):
        return 1
    try:
        with fitz.open(path) as doc:
            return doc.page_count
    except Exception as e:
        raise PageCountProbeError(f"获取页数失败: {os.path.basename(path)}, {e}") from e


class PdfStrategy:
    """
    文档转换策略基类

    子类实现 convert()，返回写入项目文件目录的 Markdown 信息；
    process() 把异常统一转换为失败结果并记录日志。
    """

    name = 'base'

    async def process(self, project_id: str, file_name: str, options: Optional[Dict] = None) -> StrategyResult:
        options = options or {}
        logger.info(f"[{self.name}] 开始转换文件: project={project_id}, file={file_name}")
        try:
            data = await self.convert(project_id, file_name, options)
        except Exception as e:
            logger.error(f"[{self.name}] 转换文件失败: {file_name}, {e}")
            return StrategyResult(success=False, error=str(e) or e.__class__.__name__)
        logger.info(f"[{self.name}] 转换完成: {file_name}")
        return StrategyResult(success=True, data=data)

    async def convert(self, project_id: str, file_name: str, options: Dict) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def source_path(project_id: str, file_name: str) -> str:
        path = os.path.join(get_project_files_dir(project_id), file_name)
        if not os.path.exists(path):
            raise FileNotFoundError(f"文件不存在: {file_name}")
        return path

    @staticmethod
    def save_markdown(project_id: str, file_name: str, content: str) -> Dict[str, Any]:
        md_name = markdown_name(file_name)
        write_project_file(project_id, md_name, content)
        return {'file_name': md_name, 'length': len(content)}
