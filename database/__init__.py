from database.base import DatabaseManager, create_tables, drop_tables, get_db
from database.models import (
    Project, ModelConfig, UploadFile, Chunk, Tag, Question, Dataset, GaPair, Task,
    TaskStatus, TaskType
)
from database.task_manager import TaskManager
from database.project_manager import ProjectManager
from database.file_manager import FileManager
from database.tag_manager import TagManager
from database.question_manager import QuestionManager
from database.ga_pair_manager import GaPairManager

__all__ = [
    'DatabaseManager',
    'create_tables',
    'drop_tables',
    'get_db',
    'Project',
    'ModelConfig',
    'UploadFile',
    'Chunk',
    'Tag',
    'Question',
    'Dataset',
    'GaPair',
    'Task',
    'TaskStatus',
    'TaskType',
    'TaskManager',
    'ProjectManager',
    'FileManager',
    'TagManager',
    'QuestionManager',
    'GaPairManager'
]
