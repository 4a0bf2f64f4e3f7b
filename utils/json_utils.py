import json
import re
from typing import Any, List, Optional

_FENCE_RE = re.compile(r"```(?:[a-zA-Z]+)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_QUOTED_RE = re.compile(r'"([^"]+)"')


def strip_code_fence(text: str) -> str:
    """去掉 ```json ... ``` 包裹，没有代码块时原样返回（去首尾空白）"""
    text = (text or "").strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def extract_json(text: str) -> Optional[Any]:
    """
    从大模型输出中提取 JSON

    依次尝试：整体解析、代码块内容、首个 [ 或 { 到最后一个 ] 或 } 之间的片段。
    全部失败时返回 None。
    """
    candidates = []
    raw = (text or "").strip()
    candidates.append(raw)
    fenced = strip_code_fence(raw)
    if fenced != raw:
        candidates.append(fenced)

    for source in (fenced, raw):
        starts = [i for i in (source.find("["), source.find("{")) if i >= 0]
        if not starts:
            continue
        start = min(starts)
        end = max(source.rfind("]"), source.rfind("}"))
        if end > start:
            candidates.append(source[start:end + 1])

    for candidate in candidates:
        for attempt in (candidate, remove_trailing_commas(candidate)):
            try:
                return json.loads(attempt)
            except (ValueError, TypeError):
                continue
    return None


def parse_string_list(text: str) -> List[str]:
    """
    解析大模型返回的字符串数组，例如 ["标签1", "标签2"]

    JSON 解析失败时退化为提取所有双引号内的字符串。
    """
    parsed = extract_json(text)
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item).strip()]
    return [match.strip() for match in _QUOTED_RE.findall(text or "") if match.strip()]
