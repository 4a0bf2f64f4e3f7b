import json
import pytest
from database import FileManager, ProjectManager, QuestionManager, TagManager
from services.dataset_generation import generate_dataset_for_question
from services.distill_generation import generate_questions, generate_tags
from services.errors import ParameterError, ParseError
from services.llm_client import LLMClient
from services.question_generation import generate_questions_for_chunk

pytestmark = pytest.mark.asyncio


@pytest.fixture
def llm(mocker):
    """替换 create_llm_client，按顺序返回预设回复"""
    client = mocker.Mock()
    client.model_name = 'gpt-4o-mini'
    client.get_response = mocker.AsyncMock()
    for module in ('distill_generation', 'question_generation'):
        mocker.patch(f'services.{module}.create_llm_client', return_value=client)
    return client


@pytest.fixture
def chunk(project):
    return FileManager().replace_file_chunks(project['id'], 'f1', 'a.md', [
        {'name': 'a-part-1', 'content': '监督学习' * 250, 'summary': 'A'}
    ])[0]


# ==============================================================================
# 1. 蒸馏标签与问题
# ==============================================================================

async def test_generate_tags_skips_existing_and_caps_count(llm, project, text_model):
    """
    已存在的同级标签不会重复创建，结果截断到 count 个
    """
    # 1. 设置
    TagManager().create_tags(project['id'], ['1 监督学习'])
    llm.get_response.return_value = '```json\n["1 监督学习", "2 无监督学习", "3 强化学习", "4 深度学习"]\n```'

    # 2. 执行
    tags = await generate_tags(project['id'], '机器学习', None, '机器学习', 2, text_model)

    # 3. 断言
    assert [t['label'] for t in tags] == ['2 无监督学习', '3 强化学习']
    assert len(TagManager().get_tags(project['id'])) == 3


async def test_generate_tags_empty_parse_raises(llm, project, text_model):
    llm.get_response.return_value = '抱歉，无法生成'

    with pytest.raises(ParseError):
        await generate_tags(project['id'], '机器学习', None, '机器学习', 3, text_model)
    assert TagManager().get_tags(project['id']) == []


async def test_generate_tags_only_duplicates_raises(llm, project, text_model):
    TagManager().create_tags(project['id'], ['1 监督学习'])
    llm.get_response.return_value = '["1 监督学习"]'

    with pytest.raises(ParseError):
        await generate_tags(project['id'], '机器学习', None, '机器学习', 3, text_model)


async def test_generate_tags_requires_parent(project, text_model):
    with pytest.raises(ParameterError):
        await generate_tags(project['id'], '', None, '', 3, text_model)


async def test_generate_questions_skips_existing(llm, project, text_model):
    """已有问题不会重复保存，新问题挂在蒸馏文本块下"""
    distill_chunk = FileManager().get_or_create_distill_chunk(project['id'])
    QuestionManager().save_questions(project['id'], distill_chunk['id'],
                                     [{'question': '什么是监督学习？', 'label': '监督学习'}])
    llm.get_response.return_value = json.dumps(
        ['什么是监督学习？', '监督学习有哪些算法？', '如何评估分类模型？', '什么是过拟合？'], ensure_ascii=False
    )

    questions = await generate_questions(project['id'], '机器学习 > 监督学习', '监督学习', 't1', 2, text_model)

    assert [q['question'] for q in questions] == ['监督学习有哪些算法？', '如何评估分类模型？']
    assert all(q['chunk_id'] == distill_chunk['id'] for q in questions)
    assert all(q['label'] == '监督学习' for q in questions)
    assert len(QuestionManager().get_distill_questions(project['id'])) == 3


async def test_generate_questions_empty_parse_raises(llm, project, text_model):
    llm.get_response.return_value = ''

    with pytest.raises(ParseError):
        await generate_questions(project['id'], '机器学习', '监督学习', None, 2, text_model)


# ==============================================================================
# 2. 数据集（答案）生成
# ==============================================================================

async def test_dataset_splits_chain_of_thought(mocker, project, text_model, chunk):
    """
    回复中的 <think> 内容保存为思维链，问题标记为已回答
    """
    # 1. 设置
    question = QuestionManager().save_questions(project['id'], chunk['id'],
                                                [{'question': '什么是监督学习？', 'label': '监督学习'}])[0]
    mocker.patch.object(LLMClient, 'get_response',
                        new_callable=mocker.AsyncMock, return_value='<think>先回顾定义</think>\n使用带标签数据训练模型')
    prompt = mocker.patch('services.dataset_generation.answer_prompt', return_value='PROMPT')

    # 2. 执行
    dataset = await generate_dataset_for_question(project['id'], question['id'], text_model)

    # 3. 断言
    assert dataset['answer'] == '使用带标签数据训练模型'
    assert dataset['cot'] == '先回顾定义'
    assert dataset['model'] == 'gpt-4o-mini'
    assert dataset['question_label'] == '监督学习'
    assert QuestionManager().get_question(question['id'])['answered'] is True
    # 普通文本块的内容作为参考资料
    assert prompt.call_args.args[1] == chunk['content']


async def test_dataset_for_distill_question_has_no_context(mocker, project, text_model):
    distill_chunk = FileManager().get_or_create_distill_chunk(project['id'])
    question = QuestionManager().save_questions(project['id'], distill_chunk['id'],
                                                [{'question': '什么是过拟合？', 'label': '监督学习'}])[0]
    mocker.patch.object(LLMClient, 'get_response', new_callable=mocker.AsyncMock, return_value='模型在训练集上表现过好')
    prompt = mocker.patch('services.dataset_generation.answer_prompt', return_value='PROMPT')

    dataset = await generate_dataset_for_question(project['id'], question['id'], text_model)

    assert dataset['cot'] == ''
    assert prompt.call_args.args[1] == ''


async def test_dataset_rejects_question_from_other_project(mocker, project, text_model, chunk):
    other = ProjectManager().create_project('其他项目')
    question = QuestionManager().save_questions(other['id'], chunk['id'], [{'question': '问题？'}])[0]
    get_response = mocker.patch.object(LLMClient, 'get_response', new_callable=mocker.AsyncMock)

    with pytest.raises(ParameterError):
        await generate_dataset_for_question(project['id'], question['id'], text_model)
    get_response.assert_not_called()
    assert QuestionManager().get_question(question['id'])['answered'] is False


# ==============================================================================
# 3. 文本块问题生成
# ==============================================================================

async def test_question_count_follows_generation_length(llm, mocker, project, text_model, chunk):
    """
    1000 字的文本块，每 250 字一个问题，请求 4 个问题
    """
    # 1. 设置
    ProjectManager().update_project(project['id'], task_config={
        'questionGenerationLength': 250, 'questionMaskRemovingProbability': 0
    })
    prompt = mocker.patch('services.question_generation.chunk_questions_prompt', return_value='PROMPT')
    llm.get_response.return_value = '["问题一？", "问题二？"]'

    # 2. 执行
    result = await generate_questions_for_chunk(project['id'], chunk['id'], text_model)

    # 3. 断言
    assert prompt.call_args.args[1] == 4
    assert result['total'] == 2
    # 项目没有标签时全部归入默认标签，不再请求打标签
    assert [q['label'] for q in result['questions']] == ['其他', '其他']
    assert llm.get_response.await_count == 1


async def test_question_labels_fall_back_to_other(llm, project, text_model, chunk):
    ProjectManager().update_project(project['id'], task_config={'questionMaskRemovingProbability': 0})
    TagManager().create_tags(project['id'], ['机器学习'])
    llm.get_response.side_effect = [
        '["问题一？", "问题二？"]',
        '[{"question": "问题一？", "label": "机器学习"}]',
    ]

    result = await generate_questions_for_chunk(project['id'], chunk['id'], text_model, language='en')

    labels = {q['question']: q['label'] for q in result['questions']}
    assert labels == {'问题一？': '机器学习', '问题二？': 'Other'}


async def test_question_mark_removed_with_full_probability(llm, project, text_model, chunk):
    ProjectManager().update_project(project['id'], task_config={'questionMaskRemovingProbability': 100})
    llm.get_response.return_value = '["问题一？", "问题二?"]'

    result = await generate_questions_for_chunk(project['id'], chunk['id'], text_model)

    assert [q['question'] for q in result['questions']] == ['问题一', '问题二']


async def test_question_generation_rejects_unknown_chunk(llm, project, text_model):
    with pytest.raises(ParameterError):
        await generate_questions_for_chunk(project['id'], 'missing', text_model)
    llm.get_response.assert_not_called()
