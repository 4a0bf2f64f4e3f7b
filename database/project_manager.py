import json
from typing import Dict, List, Optional
from database.base import DatabaseManager
from database.models import Project, ModelConfig
from config import TASK_CONFIG
from utils.logger import get_logger

logger = get_logger('project_manager', 'business')


class ProjectManager(DatabaseManager):
    """项目与模型配置数据库管理器"""

    def create_project(self, name: str, task_config: Optional[Dict] = None, **fields) -> Dict:
        with self.session_scope() as db:
            project = Project(
                name=name,
                task_config=json.dumps(task_config, ensure_ascii=False) if task_config else None,
                **fields
            )
            db.add(project)
            db.flush()
            result = project.to_dict()
        logger.info(f"创建项目成功: {name}, ID: {result['id']}")
        return result

    def get_project(self, project_id: str) -> Optional[Dict]:
        with self.session_scope() as db:
            project = db.query(Project).filter(Project.id == project_id).first()
            return project.to_dict() if project else None

    def update_project(self, project_id: str, **fields) -> Optional[Dict]:
        if 'task_config' in fields and isinstance(fields['task_config'], dict):
            fields['task_config'] = json.dumps(fields['task_config'], ensure_ascii=False)
        with self.session_scope() as db:
            project = db.query(Project).filter(Project.id == project_id).first()
            if not project:
                logger.warning(f"项目不存在: ID={project_id}")
                return None
            for key, value in fields.items():
                setattr(project, key, value)
            db.flush()
            return project.to_dict()

    def get_task_config(self, project_id: str) -> Dict:
        """项目任务配置，未设置的项使用默认值"""
        config = dict(TASK_CONFIG)
        project = self.get_project(project_id)
        if project and project['task_config']:
            config.update(project['task_config'])
        return config

    def create_model_config(self, project_id: str, provider_id: str, model_id: str, **fields) -> Dict:
        with self.session_scope() as db:
            model = ModelConfig(project_id=project_id, provider_id=provider_id, model_id=model_id, **fields)
            db.add(model)
            db.flush()
            return model.to_dict()

    def get_model_config_by_id(self, model_config_id: str) -> Optional[Dict]:
        if not model_config_id:
            logger.warning("未提供模型配置ID")
            return None
        with self.session_scope() as db:
            model = db.query(ModelConfig).filter(ModelConfig.id == model_config_id).first()
            if model:
                return model.to_dict()
        logger.warning(f"模型配置不存在: ID={model_config_id}")
        return None

    def get_model_configs(self, project_id: str) -> List[Dict]:
        with self.session_scope() as db:
            models = db.query(ModelConfig).filter(ModelConfig.project_id == project_id).all()
            return [model.to_dict() for model in models]

    def get_active_model(self, project_id: str) -> Optional[Dict]:
        """项目默认模型配置，未设置时返回 None"""
        project = self.get_project(project_id)
        if project and project['default_model_config_id']:
            model = self.get_model_config_by_id(project['default_model_config_id'])
            if model:
                logger.info(f"使用项目 {project_id} 的默认模型: {model['model_name']}")
                return model
        logger.warning(f"项目 {project_id} 没有可用的默认模型")
        return None
