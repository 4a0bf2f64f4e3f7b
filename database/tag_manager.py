from typing import Dict, List, Optional
from database.base import DatabaseManager
from database.models import Tag
from utils.logger import get_logger

logger = get_logger('tag_manager', 'business')


class TagManager(DatabaseManager):
    """领域标签数据库管理器"""

    def get_tags(self, project_id: str) -> List[Dict]:
        """项目全部标签（扁平列表，按创建顺序）"""
        with self.session_scope() as db:
            tags = db.query(Tag).filter(Tag.project_id == project_id).order_by(Tag.create_at).all()
            return [tag.to_dict() for tag in tags]

    def get_child_tags(self, project_id: str, parent_id: Optional[str]) -> List[Dict]:
        with self.session_scope() as db:
            tags = db.query(Tag).filter(
                Tag.project_id == project_id,
                Tag.parent_id == parent_id if parent_id else Tag.parent_id.is_(None)
            ).order_by(Tag.create_at).all()
            return [tag.to_dict() for tag in tags]

    def create_tags(self, project_id: str, labels: List[str], parent_id: Optional[str] = None) -> List[Dict]:
        with self.session_scope() as db:
            if parent_id:
                parent = db.query(Tag).filter(Tag.id == parent_id, Tag.project_id == project_id).first()
                if not parent:
                    raise ValueError(f"父标签不存在或不属于当前项目: {parent_id}")
            saved = []
            for label in labels:
                tag = Tag(project_id=project_id, parent_id=parent_id, label=label)
                db.add(tag)
                saved.append(tag)
            db.flush()
            result = [tag.to_dict() for tag in saved]
        logger.info(f"保存标签: project={project_id}, parent={parent_id}, 共 {len(result)} 个")
        return result

    def replace_tag_tree(self, project_id: str, tree: List[Dict]) -> List[Dict]:
        """
        用嵌套结构 [{"label": ..., "child": [...]}] 整体替换项目标签树
        """
        with self.session_scope() as db:
            # 先断开父子关系再整体删除，自引用外键不依赖删除顺序
            existing = db.query(Tag).filter(Tag.project_id == project_id)
            existing.update({Tag.parent_id: None}, synchronize_session=False)
            existing.delete(synchronize_session=False)
            db.flush()

            saved = []

            def insert(nodes: List[Dict], parent_id: Optional[str]):
                for node in nodes:
                    tag = Tag(project_id=project_id, parent_id=parent_id, label=node['label'])
                    db.add(tag)
                    db.flush()
                    saved.append(tag)
                    insert(node.get('child') or [], tag.id)

            insert(tree, None)
            result = [tag.to_dict() for tag in saved]
        logger.info(f"替换标签树: project={project_id}, 共 {len(result)} 个标签")
        return result
