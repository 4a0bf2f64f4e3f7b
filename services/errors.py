class TaskServiceError(Exception):
    """任务处理相关异常的基类"""


class ParameterError(TaskServiceError):
    """缺少必要参数或参数非法，在产生任何副作用之前拒绝"""


class ConfigurationError(TaskServiceError):
    """模型配置缺失或不合法（未配置 API Key、模型类型不符等）"""


class ExternalServiceError(TaskServiceError):
    """大模型或文档转换库调用失败"""


class ParseError(TaskServiceError):
    """大模型返回内容不是预期结构的 JSON"""


class PageCountProbeError(TaskServiceError):
    """获取文件页数失败，只影响进度统计"""


class StrategyProcessingError(TaskServiceError):
    """单个文件的文档转换失败"""


class SplitError(TaskServiceError):
    """单个文件的文本分割失败"""


class DomainTreeError(TaskServiceError):
    """领域树构建失败"""


class TaskCancelledError(TaskServiceError):
    """任务已被中断或删除，停止后续处理"""
