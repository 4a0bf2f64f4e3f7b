from typing import Any, Dict, List, Optional


def success(data: Optional[Any] = None, message: str = "ok", code: int = 0, **extra: Any) -> Dict[str, Any]:
    body = {
        "code": code,
        "message": message,
        "data": data,
    }
    body.update(extra)
    return body


def error(message: str, code: int = 1, data: Optional[Any] = None) -> Dict[str, Any]:
    return {
        "code": code,
        "message": message,
        "data": data,
    }


def paginated(items: List[Any], total: int, page: int, limit: int, message: str = "ok") -> Dict[str, Any]:
    """分页列表，page 从 0 开始"""
    return success(items, message=message, total=total, page=page, limit=limit,
                   hasMore=(page + 1) * limit < total)
