# tests/conftest.py

import os
import tempfile

# 必须在导入 config 之前设置：测试使用内存 sqlite，日志写入临时目录
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('LOG_DIR', os.path.join(tempfile.gettempdir(), 'wedataset-test-logs'))
os.environ.setdefault('TASK_MAX_RETRIES', '0')

import json
from types import SimpleNamespace
import pytest
from config import FILE_CONFIG
from database import create_tables, drop_tables
from database.project_manager import ProjectManager
from database.task_manager import TaskManager
from services.events import EventBus


# ==============================================================================
# 1. 数据库与文件目录
# ==============================================================================

@pytest.fixture(autouse=True)
def clean_database():
    """每个测试前重建所有表"""
    drop_tables()
    create_tables()
    yield
    drop_tables()


@pytest.fixture(autouse=True)
def project_root(tmp_path, monkeypatch):
    """项目文件根目录指向临时目录"""
    root = tmp_path / 'local-db'
    root.mkdir()
    monkeypatch.setitem(FILE_CONFIG, 'project_root', str(root))
    return root


# ==============================================================================
# 2. 业务数据
# ==============================================================================

@pytest.fixture
def project():
    return ProjectManager().create_project('测试项目')


@pytest.fixture
def files_dir(project, project_root):
    path = project_root / project['id'] / 'files'
    path.mkdir(parents=True)
    return path


@pytest.fixture
def text_model(project):
    return ProjectManager().create_model_config(
        project['id'], 'openai', 'gpt-4o-mini',
        provider_name='OpenAI', endpoint='http://llm.local/v1', api_key='sk-test'
    )


@pytest.fixture
def vision_model(project):
    return ProjectManager().create_model_config(
        project['id'], 'openai', 'gpt-4o',
        provider_name='OpenAI', endpoint='http://llm.local/v1', api_key='sk-test', type='vision'
    )


@pytest.fixture
def task_manager():
    return TaskManager()


@pytest.fixture
def context(task_manager):
    """任务处理器使用的最小上下文：任务存储、事件总线、不重试的队列"""
    return SimpleNamespace(
        task_manager=task_manager,
        events=EventBus(),
        queue=SimpleNamespace(max_retries=0)
    )


@pytest.fixture
def make_file_task(project, task_manager, text_model):
    """创建文件处理任务，note 中携带文件列表"""
    def _make(file_names, task_type='pdf-processing', strategy='default', action='keep', **params):
        note = {
            'projectId': project['id'],
            'fileList': [{'fileId': f'file-{i}', 'fileName': name} for i, name in enumerate(file_names)],
            'strategy': strategy,
            'domainTreeAction': action,
            **params
        }
        return task_manager.create_task(
            project['id'], task_type,
            model_info=json.dumps(text_model, ensure_ascii=False),
            note=json.dumps(note, ensure_ascii=False)
        )
    return _make
