import json
import pytest
from database import ProjectManager, TagManager
from services.domain_tree import handle_domain_tree, nest_tags, validate_tree
from services.errors import ParameterError

pytestmark = pytest.mark.asyncio

TREE = [
    {'label': '1 机器学习', 'child': [{'label': '1.1 监督学习'}, {'label': '1.2 无监督学习'}]},
    {'label': '2 深度学习'},
]


@pytest.fixture
def llm(mocker):
    client = mocker.Mock()
    client.get_response = mocker.AsyncMock(return_value='```json\n' + json.dumps(TREE, ensure_ascii=False) + '\n```')
    mocker.patch('services.domain_tree.create_llm_client', return_value=client)
    return client


async def test_rebuild_replaces_tags_and_toc(llm, project, text_model):
    """rebuild 用新目录生成领域树，替换原有标签"""
    TagManager().create_tags(project['id'], ['旧标签'])

    tags = await handle_domain_tree(project['id'], '- 第一章', text_model, 'zh-CN', 'rebuild')

    labels = [t['label'] for t in TagManager().get_tags(project['id'])]
    assert len(tags) == 4
    assert '旧标签' not in labels
    assert set(labels) == {'1 机器学习', '1.1 监督学习', '1.2 无监督学习', '2 深度学习'}
    assert ProjectManager().get_project(project['id'])['toc'] == '- 第一章'


async def test_append_sends_existing_tree(llm, project, text_model):
    TagManager().create_tags(project['id'], ['旧标签'])
    ProjectManager().update_project(project['id'], toc='- 旧目录')

    await handle_domain_tree(project['id'], '- 新目录', text_model, 'zh-CN', 'append')

    prompt = llm.get_response.await_args.args[0]
    assert '旧标签' in prompt
    assert ProjectManager().get_project(project['id'])['toc'] == '- 旧目录\n- 新目录'


async def test_keep_does_nothing(llm, project, text_model):
    assert await handle_domain_tree(project['id'], '- 第一章', text_model, 'zh-CN', 'keep') is None
    llm.get_response.assert_not_called()


async def test_unusable_reply_returns_none(llm, project, text_model):
    TagManager().create_tags(project['id'], ['旧标签'])
    llm.get_response.return_value = '无法生成'

    assert await handle_domain_tree(project['id'], '- 第一章', text_model) is None
    assert [t['label'] for t in TagManager().get_tags(project['id'])] == ['旧标签']


async def test_unknown_action(project, text_model):
    with pytest.raises(ParameterError):
        await handle_domain_tree(project['id'], '- 第一章', text_model, 'zh-CN', 'merge')


async def test_nest_and_validate_tree():
    tags = [
        {'id': 'a', 'label': 'A', 'parent_id': None},
        {'id': 'b', 'label': 'B', 'parent_id': 'a'},
    ]
    assert nest_tags(tags) == [{'label': 'A', 'child': [{'label': 'B', 'child': []}]}]
    assert validate_tree({'tags': [{'label': ' A '}]}) == [{'label': 'A', 'child': []}]
    with pytest.raises(ValueError):
        validate_tree([{'name': 'A'}])
