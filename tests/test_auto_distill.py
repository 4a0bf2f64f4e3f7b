import pytest
from services.auto_distill import AutoDistillService, DistillConfig, TagTree, tag_sort_key

pytestmark = pytest.mark.asyncio


class FakeDistillApi:
    """内存中的蒸馏接口，记录每次生成请求"""

    def __init__(self, tags=None, questions=None):
        self.tags = list(tags or [])
        self.questions = list(questions or [])
        self.tag_calls = []
        self.question_calls = []
        self.dataset_calls = []

    async def get_all_tags(self, project_id):
        return list(self.tags)

    async def generate_tags(self, project_id, parent_tag, parent_tag_id, tag_path, count, model, language):
        self.tag_calls.append({'parent_tag': parent_tag, 'parent_tag_id': parent_tag_id, 'count': count})
        created = [{'id': f'{parent_tag_id or "root"}-{i}', 'label': f'{parent_tag}-{i}', 'parent_id': parent_tag_id}
                   for i in range(1, count + 1)]
        self.tags.extend(created)
        return created

    async def get_distill_questions(self, project_id):
        return list(self.questions)

    async def generate_questions(self, project_id, tag_path, current_tag, tag_id, count, model, language):
        self.question_calls.append({'tag_path': tag_path, 'current_tag': current_tag, 'count': count})
        created = [{'id': f'{tag_id}-q{i}', 'label': current_tag, 'answered': False} for i in range(count)]
        self.questions.extend(created)
        return created

    async def generate_dataset(self, project_id, question_id, model, language):
        self.dataset_calls.append(question_id)
        if question_id == 'broken':
            raise RuntimeError('模型超时')
        return {'id': f'd-{question_id}'}


def make_config(**overrides):
    values = dict(project_id='p1', topic='机器学习', levels=1, tags_per_level=2, questions_per_tag=10,
                  model={'model_id': 'm'}, language='zh-CN')
    values.update(overrides)
    return DistillConfig(**values)


async def test_tag_sort_key_orders_numbered_labels():
    labels = ['2 B', '1.10 C', '1 A', '1.2 D']
    assert sorted(labels, key=tag_sort_key) == ['1 A', '1.2 D', '1.10 C', '2 B']
    assert sorted(['beta', '3 C', 'Alpha'], key=tag_sort_key) == ['3 C', 'Alpha', 'beta']


async def test_tag_tree_depth_path_and_cycle():
    tree = TagTree([
        {'id': 'a', 'label': '1 A', 'parent_id': None},
        {'id': 'b', 'label': '1.1 B', 'parent_id': 'a'},
        {'id': 'c', 'label': '1.1.1 C', 'parent_id': 'b'},
        {'id': 'orphan', 'label': 'X', 'parent_id': 'missing'},
    ])

    assert tree.depth('c') == 3
    assert tree.depth('c') == 3
    assert tree.depth('orphan') == 1
    assert tree.path('c') == '1 A > 1.1 B > 1.1.1 C'
    assert [n.id for n in tree.leaves(3)] == ['c']

    looped = TagTree([
        {'id': 'x', 'label': 'X', 'parent_id': 'y'},
        {'id': 'y', 'label': 'Y', 'parent_id': 'x'},
    ])
    with pytest.raises(ValueError):
        looped.depth('x')


async def test_only_missing_questions_are_generated():
    """
    叶子标签已有 7 个问题时只补 3 个，已有 10 个时不再请求
    """
    # 1. 设置
    api = FakeDistillApi(
        tags=[{'id': 't1', 'label': '1 监督学习', 'parent_id': None},
              {'id': 't2', 'label': '2 无监督学习', 'parent_id': None}],
        questions=[{'id': f'a{i}', 'label': '1 监督学习', 'answered': True} for i in range(7)]
        + [{'id': f'b{i}', 'label': '2 无监督学习', 'answered': True} for i in range(10)]
    )
    logs = []

    # 2. 执行
    stats = await AutoDistillService(api).execute(make_config(on_log=logs.append))

    # 3. 断言
    assert api.tag_calls == []
    assert api.question_calls == [{'tag_path': '1 监督学习', 'current_tag': '1 监督学习', 'count': 3}]
    assert any('已有10个问题，无需生成新问题' in message for message in logs)
    assert stats == {'tagsBuilt': 0, 'questionsBuilt': 3, 'datasetsBuilt': 3}


async def test_builds_missing_tags_per_level():
    api = FakeDistillApi(tags=[{'id': 't1', 'label': '机器学习-1', 'parent_id': None}])
    progress = []

    async def on_progress(update):
        progress.append(update)

    stats = await AutoDistillService(api).execute(
        make_config(levels=2, tags_per_level=2, questions_per_tag=1, on_progress=on_progress)
    )

    assert api.tag_calls[0] == {'parent_tag': '机器学习', 'parent_tag_id': None, 'count': 1}
    # 第二层：两个一级标签各生成 2 个子标签
    assert [c['count'] for c in api.tag_calls[1:]] == [2, 2]
    assert stats['tagsBuilt'] == 5
    assert stats['questionsBuilt'] == 4
    assert len(api.question_calls) == 4
    assert all(' > ' in c['tag_path'] for c in api.question_calls)
    stages = [p['stage'] for p in progress if 'stage' in p]
    assert stages[0] == 'initializing'
    assert stages[-1] == 'completed'
    assert {'level1', 'level2', 'questions', 'datasets'} <= set(stages)
    increments = [p for p in progress if p.get('updateType') == 'increment']
    assert increments


async def test_dataset_failures_are_skipped():
    api = FakeDistillApi(
        tags=[{'id': 't1', 'label': 'A', 'parent_id': None}, {'id': 't2', 'label': 'B', 'parent_id': None}],
        questions=[{'id': 'broken', 'label': 'A', 'answered': False},
                   {'id': 'ok', 'label': 'B', 'answered': False},
                   {'id': 'done', 'label': 'B', 'answered': True}]
    )

    stats = await AutoDistillService(api).execute(make_config(questions_per_tag=1))

    assert api.dataset_calls == ['broken', 'ok']
    assert stats['datasetsBuilt'] == 1


async def test_tag_listing_failure_aborts_run(mocker):
    api = FakeDistillApi()
    api.get_all_tags = mocker.AsyncMock(side_effect=RuntimeError('接口不可用'))

    with pytest.raises(RuntimeError):
        await AutoDistillService(api).execute(make_config())
