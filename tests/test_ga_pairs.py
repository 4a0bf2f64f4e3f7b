import pytest
from config import FILE_CONFIG
from database import FileManager, GaPairManager
from database.file_manager import write_project_file
from services.errors import ConfigurationError
from services.ga_generation import get_fallback_ga_pairs
from services.ga_pairs import batch_generate_ga_pairs, generate_ga_pairs_for_file, limit_content

pytestmark = pytest.mark.asyncio


@pytest.fixture
def uploaded(project):
    """两个已转换为 Markdown 的文件"""
    manager = FileManager()
    files = []
    for name in ('guide.pdf', 'notes.md'):
        record = manager.create_file(project['id'], name)
        write_project_file(project['id'], 'guide.md' if name == 'guide.pdf' else name, f'# {name}\n正文内容')
        files.append(record)
    return files


@pytest.fixture
def fake_generate(mocker):
    return mocker.patch('services.ga_pairs.generate_ga_pairs', return_value=get_fallback_ga_pairs())


async def test_batch_report_has_entry_per_file(uploaded, fake_generate, project, text_model):
    """
    批量生成时每个输入文件都有一条结果，不存在的文件记为失败
    """
    # 1. 设置
    files = [{'id': uploaded[0]['id']}, {'id': 'missing-file'}, {'id': uploaded[1]['id']}]
    progress = []

    # 2. 执行
    results = await batch_generate_ga_pairs(
        project['id'], files, text_model['id'], on_progress=lambda done, total: progress.append((done, total))
    )

    # 3. 断言
    assert [r['fileId'] for r in results] == [uploaded[0]['id'], 'missing-file', uploaded[1]['id']]
    assert [r['success'] for r in results] == [True, False, True]
    assert results[0]['fileName'] == 'guide.pdf'
    assert '文件不存在' in results[1]['error']
    assert len(results[2]['gaPairs']) == 5
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert fake_generate.await_count == 2


async def test_existing_pairs_are_skipped(uploaded, fake_generate, project, text_model):
    file_id = uploaded[0]['id']
    GaPairManager().replace_ga_pairs(project['id'], file_id, get_fallback_ga_pairs()[:2])

    result = await generate_ga_pairs_for_file(project['id'], file_id, text_model['id'])

    assert result['skipped'] is True
    assert len(result['gaPairs']) == 2
    fake_generate.assert_not_called()


async def test_regenerate_replaces_pairs(uploaded, fake_generate, project, text_model):
    file_id = uploaded[0]['id']
    GaPairManager().replace_ga_pairs(project['id'], file_id, get_fallback_ga_pairs()[:2])

    result = await generate_ga_pairs_for_file(project['id'], file_id, text_model['id'], regenerate=True)

    assert result['skipped'] is False
    assert [p['pair_number'] for p in result['gaPairs']] == [1, 2, 3, 4, 5]


async def test_append_mode_skips_duplicates(uploaded, fake_generate, project, text_model):
    file_id = uploaded[0]['id']
    GaPairManager().replace_ga_pairs(project['id'], file_id, get_fallback_ga_pairs()[:2])

    result = await generate_ga_pairs_for_file(project['id'], file_id, text_model['id'], append_mode=True)

    assert result['message'] == 'Appended 3 GA pairs'
    assert [p['pair_number'] for p in result['gaPairs']] == [1, 2, 3, 4, 5]
    titles = [p['genre_title'] for p in result['gaPairs']]
    assert len(set(titles)) == 5


async def test_unknown_model_config(uploaded, project):
    with pytest.raises(ConfigurationError):
        await generate_ga_pairs_for_file(project['id'], uploaded[0]['id'], 'no-such-model')


async def test_content_is_truncated(monkeypatch):
    monkeypatch.setitem(FILE_CONFIG, 'max_content_length', 10)

    assert limit_content('a' * 12) == 'a' * 10 + '...'
    assert limit_content('short') == 'short'
