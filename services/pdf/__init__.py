from services.errors import ParameterError
from services.pdf.base import PdfStrategy, StrategyResult, count_pages
from services.pdf.default import DefaultStrategy
from services.pdf.mineru import MineruStrategy
from services.pdf.vision import VisionStrategy
from services.pdf.text import TextStrategy

STRATEGIES = {
    DefaultStrategy.name: DefaultStrategy,
    MineruStrategy.name: MineruStrategy,
    VisionStrategy.name: VisionStrategy,
    TextStrategy.name: TextStrategy,
}


def get_strategy(name: str) -> PdfStrategy:
    strategy_cls = STRATEGIES.get(name or 'default')
    if not strategy_cls:
        raise ParameterError(f"不支持的处理策略: {name}，可选: {list(STRATEGIES)}")
    return strategy_cls()


__all__ = [
    'PdfStrategy',
    'StrategyResult',
    'DefaultStrategy',
    'MineruStrategy',
    'VisionStrategy',
    'TextStrategy',
    'count_pages',
    'get_strategy'
]
