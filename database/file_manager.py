import os
from typing import Dict, List, Optional
from database.base import DatabaseManager
from database.models import UploadFile, Chunk
from config import FILE_CONFIG
from utils.logger import get_logger

logger = get_logger('file_manager', 'business')

DISTILL_CHUNK_NAME = 'Distilled Content'


def get_project_root() -> str:
    return FILE_CONFIG['project_root']


def get_project_files_dir(project_id: str) -> str:
    """项目文件目录: <project_root>/<projectId>/files"""
    return os.path.join(get_project_root(), project_id, 'files')


def markdown_name(file_name: str) -> str:
    """转换后的 Markdown 文件名，例如 a.pdf -> a.md"""
    stem, ext = os.path.splitext(file_name)
    if ext.lower() == '.md':
        return file_name
    return f"{stem}.md"


def read_project_file(project_id: str, file_name: str) -> str:
    path = os.path.join(get_project_files_dir(project_id), file_name)
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def write_project_file(project_id: str, file_name: str, content: str) -> str:
    files_dir = get_project_files_dir(project_id)
    os.makedirs(files_dir, exist_ok=True)
    path = os.path.join(files_dir, file_name)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)
    return path


class FileManager(DatabaseManager):
    """上传文件与文本块数据库管理器"""

    def create_file(self, project_id: str, file_name: str, size: int = 0) -> Dict:
        with self.session_scope() as db:
            upload = UploadFile(
                project_id=project_id,
                file_name=file_name,
                file_ext=os.path.splitext(file_name)[1].lower(),
                path=get_project_files_dir(project_id),
                size=size
            )
            db.add(upload)
            db.flush()
            return upload.to_dict()

    def get_file(self, file_id: str) -> Optional[Dict]:
        with self.session_scope() as db:
            upload = db.query(UploadFile).filter(UploadFile.id == file_id).first()
            return upload.to_dict() if upload else None

    def get_files(self, project_id: str, file_ids: Optional[List[str]] = None) -> List[Dict]:
        with self.session_scope() as db:
            query = db.query(UploadFile).filter(UploadFile.project_id == project_id)
            if file_ids is not None:
                query = query.filter(UploadFile.id.in_(file_ids))
            return [upload.to_dict() for upload in query.order_by(UploadFile.create_at).all()]

    def get_file_content(self, project_id: str, file_id: str) -> Optional[str]:
        """读取文件转换后的 Markdown 内容，读取失败返回 None"""
        upload = self.get_file(file_id)
        if not upload or upload['project_id'] != project_id:
            logger.warning(f"文件不存在或不属于项目: file={file_id}, project={project_id}")
            return None
        try:
            return read_project_file(project_id, markdown_name(upload['file_name']))
        except OSError as e:
            logger.error(f"读取文件内容失败: {upload['file_name']}, {e}")
            return None

    def replace_file_chunks(self, project_id: str, file_id: str, file_name: str, chunks: List[Dict]) -> List[Dict]:
        """删除文件原有文本块并保存新的文本块"""
        with self.session_scope() as db:
            db.query(Chunk).filter(Chunk.project_id == project_id, Chunk.file_id == file_id).delete()
            saved = []
            for item in chunks:
                chunk = Chunk(
                    project_id=project_id,
                    file_id=file_id,
                    file_name=file_name,
                    name=item['name'],
                    content=item['content'],
                    summary=item.get('summary', ''),
                    size=len(item['content'])
                )
                db.add(chunk)
                saved.append(chunk)
            db.flush()
            result = [chunk.to_dict() for chunk in saved]
        logger.info(f"保存文本块: file={file_name}, 共 {len(result)} 个")
        return result

    def get_chunks(self, project_id: str, include_distill: bool = False) -> List[Dict]:
        with self.session_scope() as db:
            query = db.query(Chunk).filter(Chunk.project_id == project_id)
            if not include_distill:
                query = query.filter(Chunk.name != DISTILL_CHUNK_NAME)
            return [chunk.to_dict() for chunk in query.order_by(Chunk.create_at).all()]

    def get_chunk(self, chunk_id: str) -> Optional[Dict]:
        with self.session_scope() as db:
            chunk = db.query(Chunk).filter(Chunk.id == chunk_id).first()
            return chunk.to_dict() if chunk else None

    def get_or_create_distill_chunk(self, project_id: str) -> Dict:
        """蒸馏生成的问题统一挂在一个特殊文本块下"""
        with self.session_scope() as db:
            chunk = db.query(Chunk).filter(
                Chunk.project_id == project_id,
                Chunk.name == DISTILL_CHUNK_NAME
            ).first()
            if not chunk:
                chunk = Chunk(
                    project_id=project_id,
                    file_id='distilled',
                    file_name='distilled.md',
                    name=DISTILL_CHUNK_NAME,
                    content='此文本块用于存储通过数据蒸馏生成的问题，不与实际文献相关。',
                    summary='蒸馏生成的问题集合',
                    size=0
                )
                db.add(chunk)
                db.flush()
            return chunk.to_dict()
