from typing import Dict, List, Optional
from database.base import DatabaseManager
from database.models import GaPair
from utils.logger import get_logger

logger = get_logger('ga_pair_manager', 'business')


class GaPairManager(DatabaseManager):
    """Genre-Audience 对数据库管理器"""

    def get_ga_pairs(self, project_id: str, file_id: str, active_only: bool = False) -> List[Dict]:
        with self.session_scope() as db:
            query = db.query(GaPair).filter(GaPair.project_id == project_id, GaPair.file_id == file_id)
            if active_only:
                query = query.filter(GaPair.is_active.is_(True))
            return [pair.to_dict() for pair in query.order_by(GaPair.pair_number).all()]

    def replace_ga_pairs(self, project_id: str, file_id: str, pairs: List[Dict]) -> List[Dict]:
        """
        删除文件现有 GA 对并保存新的一组

        pairs 元素: {"genre": {"title", "description"}, "audience": {"title", "description"}, "is_active"?}
        """
        with self.session_scope() as db:
            db.query(GaPair).filter(GaPair.project_id == project_id, GaPair.file_id == file_id).delete()
            saved = self._add_pairs(db, project_id, file_id, pairs, start_number=1)
            result = [pair.to_dict() for pair in saved]
        logger.info(f"保存 GA 对: file={file_id}, 共 {len(result)} 个")
        return result

    def append_ga_pairs(self, project_id: str, file_id: str, pairs: List[Dict]) -> List[Dict]:
        """在现有 GA 对之后追加，编号顺延"""
        with self.session_scope() as db:
            last = db.query(GaPair).filter(
                GaPair.project_id == project_id, GaPair.file_id == file_id
            ).order_by(GaPair.pair_number.desc()).first()
            start = (last.pair_number + 1) if last else 1
            saved = self._add_pairs(db, project_id, file_id, pairs, start_number=start)
            result = [pair.to_dict() for pair in saved]
        logger.info(f"追加 GA 对: file={file_id}, 共 {len(result)} 个")
        return result

    def toggle_ga_pair(self, project_id: str, file_id: str, pair_id: str, is_active: bool) -> Optional[Dict]:
        with self.session_scope() as db:
            pair = db.query(GaPair).filter(
                GaPair.id == pair_id,
                GaPair.project_id == project_id,
                GaPair.file_id == file_id
            ).first()
            if not pair:
                logger.warning(f"GA 对不存在: ID={pair_id}")
                return None
            pair.is_active = bool(is_active)
            db.flush()
            return pair.to_dict()

    @staticmethod
    def _add_pairs(db, project_id: str, file_id: str, pairs: List[Dict], start_number: int) -> List[GaPair]:
        saved = []
        for offset, item in enumerate(pairs):
            pair = GaPair(
                project_id=project_id,
                file_id=file_id,
                pair_number=start_number + offset,
                genre_title=item['genre']['title'],
                genre_desc=item['genre'].get('description', ''),
                audience_title=item['audience']['title'],
                audience_desc=item['audience'].get('description', ''),
                is_active=item.get('is_active', True)
            )
            db.add(pair)
            saved.append(pair)
        db.flush()
        return saved
