import json
import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey, Index
from database.base import Base


def generate_id() -> str:
    return uuid.uuid4().hex


def format_time(value):
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else None


class TaskStatus:
    """任务状态码，running 是唯一的非终态"""
    RUNNING = 0
    COMPLETED = 1
    FAILED = 2
    ABORTED = 3

    TERMINAL = (COMPLETED, FAILED, ABORTED)
    ALL = (RUNNING, COMPLETED, FAILED, ABORTED)


class TaskType:
    PDF_PROCESSING = 'pdf-processing'
    TEXT_PROCESSING = 'text-processing'
    QUESTION_GENERATION = 'question-generation'
    ANSWER_GENERATION = 'answer-generation'
    DATA_DISTILLATION = 'data-distillation'

    ALL = (PDF_PROCESSING, TEXT_PROCESSING, QUESTION_GENERATION, ANSWER_GENERATION, DATA_DISTILLATION)


class Project(Base):
    """项目模型"""
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=generate_id, comment="项目ID")
    name = Column(String(255), nullable=False, comment="项目名称")
    description = Column(Text, nullable=True)
    default_model_config_id = Column(String(32), nullable=True, comment="默认模型配置ID")
    global_prompt = Column(Text, nullable=True, comment="全局提示词")
    question_prompt = Column(Text, nullable=True, comment="问题生成提示词")
    task_config = Column(Text, nullable=True, comment="任务配置(JSON)")
    toc = Column(Text, nullable=True, comment="最近一次领域树使用的目录")
    create_at = Column(DateTime, default=datetime.now)
    update_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'default_model_config_id': self.default_model_config_id,
            'global_prompt': self.global_prompt,
            'question_prompt': self.question_prompt,
            'task_config': json.loads(self.task_config) if self.task_config else {},
            'toc': self.toc,
            'create_at': format_time(self.create_at),
            'update_at': format_time(self.update_at)
        }


class ModelConfig(Base):
    """模型配置"""
    __tablename__ = "model_configs"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    provider_id = Column(String(64), nullable=False)
    provider_name = Column(String(128), nullable=True)
    endpoint = Column(String(500), nullable=True)
    api_key = Column(String(500), nullable=True)
    model_id = Column(String(255), nullable=False)
    model_name = Column(String(255), nullable=True)
    type = Column(String(20), default='text', comment="text | vision")
    temperature = Column(Float, default=0.7)
    max_tokens = Column(Integer, default=8192)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'provider_id': self.provider_id,
            'provider_name': self.provider_name,
            'endpoint': self.endpoint,
            'api_key': self.api_key,
            'model_id': self.model_id,
            'model_name': self.model_name or self.model_id,
            'type': self.type or 'text',
            'temperature': self.temperature,
            'max_tokens': self.max_tokens
        }


class UploadFile(Base):
    """上传文件"""
    __tablename__ = "upload_files"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    file_name = Column(String(500), nullable=False)
    file_ext = Column(String(20), nullable=True)
    path = Column(String(1000), nullable=True, comment="文件所在目录")
    size = Column(Integer, default=0)
    create_at = Column(DateTime, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'file_name': self.file_name,
            'file_ext': self.file_ext,
            'path': self.path,
            'size': self.size,
            'create_at': format_time(self.create_at)
        }


class Chunk(Base):
    """文本块"""
    __tablename__ = "chunks"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    file_id = Column(String(32), nullable=False, index=True)
    file_name = Column(String(500), nullable=False)
    name = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    size = Column(Integer, default=0)
    create_at = Column(DateTime, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'file_id': self.file_id,
            'file_name': self.file_name,
            'name': self.name,
            'content': self.content,
            'summary': self.summary,
            'size': self.size
        }


class Tag(Base):
    """领域标签，parent_id 自引用形成树"""
    __tablename__ = "tags"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    parent_id = Column(String(32), ForeignKey("tags.id"), nullable=True, index=True)
    label = Column(String(500), nullable=False)
    create_at = Column(DateTime, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'parent_id': self.parent_id,
            'label': self.label
        }


class Question(Base):
    """问题"""
    __tablename__ = "questions"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    chunk_id = Column(String(32), nullable=False, index=True)
    label = Column(String(500), nullable=True, comment="标签名称")
    question = Column(Text, nullable=False)
    answered = Column(Boolean, default=False)
    create_at = Column(DateTime, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'chunk_id': self.chunk_id,
            'label': self.label,
            'question': self.question,
            'answered': bool(self.answered)
        }


class Dataset(Base):
    """问答数据集条目"""
    __tablename__ = "datasets"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    question_id = Column(String(32), nullable=True, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    cot = Column(Text, nullable=True, comment="思维链")
    question_label = Column(String(500), nullable=True)
    chunk_id = Column(String(32), nullable=True)
    confirmed = Column(Boolean, default=False)
    model = Column(String(255), nullable=True)
    create_at = Column(DateTime, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'question_id': self.question_id,
            'question': self.question,
            'answer': self.answer,
            'cot': self.cot,
            'question_label': self.question_label,
            'chunk_id': self.chunk_id,
            'confirmed': bool(self.confirmed),
            'model': self.model,
            'create_at': format_time(self.create_at)
        }


class GaPair(Base):
    """Genre-Audience 增强对"""
    __tablename__ = "ga_pairs"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, index=True)
    file_id = Column(String(32), nullable=False, index=True)
    pair_number = Column(Integer, nullable=False)
    genre_title = Column(String(255), nullable=False)
    genre_desc = Column(Text, nullable=True)
    audience_title = Column(String(255), nullable=False)
    audience_desc = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    create_at = Column(DateTime, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'file_id': self.file_id,
            'pair_number': self.pair_number,
            'genre_title': self.genre_title,
            'genre_desc': self.genre_desc,
            'audience_title': self.audience_title,
            'audience_desc': self.audience_desc,
            'is_active': bool(self.is_active)
        }


class Task(Base):
    """后台任务模型"""
    __tablename__ = "tasks"
    __table_args__ = (
        Index('ix_tasks_project_create', 'project_id', 'create_at'),
    )

    id = Column(String(32), primary_key=True, default=generate_id, comment="任务ID")
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False, comment="所属项目")
    task_type = Column(String(50), nullable=False, comment="任务类型")
    status = Column(Integer, default=TaskStatus.RUNNING, comment="0运行中 1完成 2失败 3中断")
    model_info = Column(Text, nullable=True, comment="模型配置(JSON)")
    language = Column(String(20), default='zh-CN')
    detail = Column(Text, nullable=True, comment="进度详情(JSON)")
    note = Column(Text, nullable=True, comment="创建时的任务参数(JSON)")
    total_count = Column(Integer, default=0)
    completed_count = Column(Integer, default=0)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    create_at = Column(DateTime, default=datetime.now, comment="创建时间")
    update_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    def __repr__(self):
        return f"<Task(id={self.id}, task_type='{self.task_type}', status={self.status})>"

    def to_dict(self) -> dict:
        """转换为字典格式"""
        return {
            'id': self.id,
            'project_id': self.project_id,
            'task_type': self.task_type,
            'status': self.status,
            'model_info': self.model_info,
            'language': self.language,
            'detail': self.detail,
            'note': self.note,
            'total_count': self.total_count or 0,
            'completed_count': self.completed_count or 0,
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'create_at': format_time(self.create_at),
            'update_at': format_time(self.update_at)
        }
