import base64
import re
from typing import Dict, List, Optional, Tuple
from openai import AsyncOpenAI
from config import LLM_CONFIG
from services.errors import ConfigurationError, ExternalServiceError
from utils.logger import get_logger

logger = get_logger('llm_client', 'business')

THINK_PATTERN = re.compile(r'<think>([\s\S]*?)</think>', re.IGNORECASE)


def _pick(config: Dict, *keys, default=None):
    # 模型配置可能来自数据库(snake_case)或前端请求(camelCase)
    for key in keys:
        value = config.get(key)
        if value not in (None, ''):
            return value
    return default


def split_cot(text: str) -> Tuple[str, str]:
    """拆分 <think> 思维链与最终回答，返回 (answer, cot)"""
    if not text:
        return '', ''
    match = THINK_PATTERN.search(text)
    if not match:
        return text.strip(), ''
    cot = match.group(1).strip()
    answer = THINK_PATTERN.sub('', text).strip()
    return answer, cot


class LLMClient:
    """
    OpenAI 兼容接口的大模型客户端

    Args:
        model_config: 模型配置字典，至少包含 endpoint / api_key / model_id
    """

    def __init__(self, model_config: Dict):
        if not model_config:
            raise ConfigurationError("未提供模型配置")
        self.config = model_config
        self.model_name = _pick(model_config, 'model_id', 'modelId', 'model_name', 'modelName')
        if not self.model_name:
            raise ConfigurationError("模型配置缺少 modelId")
        self.api_key = _pick(model_config, 'api_key', 'apiKey')
        self.endpoint = _pick(model_config, 'endpoint')
        self.temperature = float(_pick(model_config, 'temperature', default=LLM_CONFIG['temperature']))
        self.max_tokens = int(_pick(model_config, 'max_tokens', 'maxTokens', default=LLM_CONFIG['max_tokens']))
        self.client = AsyncOpenAI(
            api_key=self.api_key or 'EMPTY',
            base_url=self.endpoint or None,
            timeout=LLM_CONFIG['timeout']
        )

    async def chat(self, messages: List[Dict], temperature: Optional[float] = None,
                   max_tokens: Optional[int] = None) -> str:
        """发送对话请求，返回模型回复文本"""
        try:
            completion = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=max_tokens or self.max_tokens
            )
        except Exception as e:
            logger.error(f"调用大模型失败: model={self.model_name}, {e}")
            raise ExternalServiceError(f"调用大模型失败: {e}") from e
        content = completion.choices[0].message.content or ''
        logger.debug(f"大模型回复长度: {len(content)}")
        return content

    async def get_response(self, prompt: str, **kwargs) -> str:
        return await self.chat([{"role": "user", "content": prompt}], **kwargs)

    async def get_response_with_cot(self, prompt: str, **kwargs) -> Dict[str, str]:
        text = await self.get_response(prompt, **kwargs)
        answer, cot = split_cot(text)
        return {"answer": answer, "cot": cot}

    async def vision_chat(self, prompt: str, image_bytes: bytes, mime_type: str = 'image/png') -> str:
        """图片 + 文本提示的视觉模型请求"""
        image_b64 = base64.b64encode(image_bytes).decode('ascii')
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{image_b64}"}}
            ]
        }]
        return await self.chat(messages)


def create_llm_client(model_config: Dict) -> LLMClient:
    return LLMClient(model_config)
