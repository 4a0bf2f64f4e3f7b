import asyncio
import copy
import json
import re
from typing import Dict, List, Optional
from config import LLM_CONFIG
from database.project_manager import ProjectManager
from services.errors import ConfigurationError, ExternalServiceError
from services.llm_client import create_llm_client
from services.prompts import ga_prompt
from utils.json_utils import strip_code_fence, remove_trailing_commas
from utils.logger import get_logger

logger = get_logger('ga_generation', 'business')

GA_PAIR_COUNT = 5

ARRAY_RE = re.compile(r'\[\s*\{[\s\S]*\}\s*\]')
LEADING_RE = re.compile(r'^[^\[{]*')
TRAILING_RE = re.compile(r'[^}\]]*$')
NATIVE_KEY_RE = re.compile(r'^(genre|audience)_(\d+)$')

FALLBACK_GA_PAIRS = [
    {
        'genre': {'title': 'Academic Research',
                  'description': 'Scholarly, research-oriented content with formal tone and detailed analysis'},
        'audience': {'title': 'Researchers',
                     'description': 'Academic researchers and graduate students seeking in-depth knowledge'}
    },
    {
        'genre': {'title': 'Educational Guide',
                  'description': 'Structured learning material with clear explanations and examples'},
        'audience': {'title': 'Students',
                     'description': 'Undergraduate students and learners new to the subject'}
    },
    {
        'genre': {'title': 'Professional Manual',
                  'description': 'Practical, implementation-focused content for workplace application'},
        'audience': {'title': 'Practitioners',
                     'description': 'Industry professionals applying knowledge in practice'}
    },
    {
        'genre': {'title': 'Popular Science',
                  'description': 'Accessible content that makes complex topics understandable'},
        'audience': {'title': 'General Public',
                     'description': 'Curious readers without specialized background'}
    },
    {
        'genre': {'title': 'Technical Documentation',
                  'description': 'Detailed specifications and implementation guidelines'},
        'audience': {'title': 'Developers',
                     'description': 'Technical specialists and system implementers'}
    }
]

project_manager = ProjectManager()


def get_fallback_ga_pairs() -> List[Dict]:
    return copy.deepcopy(FALLBACK_GA_PAIRS)


def _clean_json_text(text: str) -> str:
    text = strip_code_fence(text)
    match = ARRAY_RE.search(text)
    if match:
        text = match.group(0)
    text = LEADING_RE.sub('', text)
    text = TRAILING_RE.sub('', text)
    return remove_trailing_commas(text).strip()


def _unwrap_pairs(parsed) -> List:
    if isinstance(parsed, list):
        return parsed
    if not isinstance(parsed, dict):
        raise ValueError("GA 回复既不是数组也不是对象")
    for key in ('gaPairs', 'pairs', 'results'):
        if isinstance(parsed.get(key), list):
            return parsed[key]

    # 提示词要求的格式: {"audience_1": {...}, "genre_1": {...}, ...}
    numbered: Dict[int, Dict] = {}
    for key, value in parsed.items():
        match = NATIVE_KEY_RE.match(key)
        if match:
            numbered.setdefault(int(match.group(2)), {})[match.group(1)] = value
    if not numbered:
        raise ValueError("GA 回复中没有找到 GA 对数组")
    return [numbered[index] for index in sorted(numbered)]


def _validate_pair(pair, index: int) -> Dict:
    if not isinstance(pair, dict) or not isinstance(pair.get('genre'), dict) \
            or not isinstance(pair.get('audience'), dict):
        raise ValueError(f"GA pair {index + 1} missing genre or audience")
    genre, audience = pair['genre'], pair['audience']
    fields = (genre.get('title'), genre.get('description'), audience.get('title'), audience.get('description'))
    if not all(str(value).strip() if value is not None else '' for value in fields):
        raise ValueError(f"GA pair {index + 1} missing required fields")
    return {
        'genre': {'title': str(genre['title']).strip(), 'description': str(genre['description']).strip()},
        'audience': {'title': str(audience['title']).strip(), 'description': str(audience['description']).strip()}
    }


def parse_ga_response(response: str) -> List[Dict]:
    """
    解析 GA 对回复，始终返回 5 个校验通过的 GA 对

    任一 GA 对字段缺失视为整体解析失败，返回默认 GA 对；
    数量不足时用默认 GA 对补齐，超过时截取前 5 个。
    """
    try:
        parsed = json.loads(_clean_json_text(response or ''))
        pairs = [_validate_pair(pair, i) for i, pair in enumerate(_unwrap_pairs(parsed))]
    except (ValueError, TypeError) as e:
        logger.error(f"解析 GA 回复失败，使用默认 GA 对: {e}")
        return get_fallback_ga_pairs()

    if len(pairs) != GA_PAIR_COUNT:
        logger.warning(f"期望 {GA_PAIR_COUNT} 个 GA 对，实际 {len(pairs)} 个，进行截取或补齐")
        fallbacks = get_fallback_ga_pairs()
        pairs = pairs[:GA_PAIR_COUNT]
        while len(pairs) < GA_PAIR_COUNT:
            pairs.append(fallbacks[len(pairs)])
    return pairs


async def generate_ga_pairs(content: str, project_id: str, model_config: Optional[Dict] = None,
                            language: str = 'zh-CN') -> List[Dict]:
    """为文本生成 5 个 GA 对，未指定模型时使用项目默认模型"""
    model = model_config or await asyncio.to_thread(project_manager.get_active_model, project_id)
    if not model:
        raise ConfigurationError("没有可用于 GA 生成的模型配置")

    client = create_llm_client(model)
    try:
        response = await client.chat(
            [{'role': 'user', 'content': ga_prompt(content, language)}],
            temperature=LLM_CONFIG['ga_temperature'],
            max_tokens=LLM_CONFIG['ga_max_tokens']
        )
    except ExternalServiceError:
        raise
    except Exception as e:
        raise ExternalServiceError(f"LLM API call failed: {e}") from e
    if not response:
        raise ExternalServiceError("Invalid response from LLM")

    pairs = parse_ga_response(response)
    logger.info(f"GA 对生成完成: project={project_id}, 共 {len(pairs)} 个")
    return pairs
