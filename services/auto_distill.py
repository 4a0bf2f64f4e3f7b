import inspect
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from services.errors import TaskCancelledError
from utils.logger import get_logger

logger = get_logger('auto_distill', 'business')

TAG_PREFIX_RE = re.compile(r'^([\d.]+)\s')


def tag_sort_key(label: str) -> Tuple:
    """
    同级标签排序键

    带数字序号的标签按序号逐段数值比较（"1.2" 在 "1.10" 之前，"1" 在 "1.1" 之前），
    并排在无序号标签之前；其余按字符串比较。
    """
    label = label or ''
    match = TAG_PREFIX_RE.match(label)
    if match:
        parts = tuple(int(p) for p in match.group(1).split('.') if p)
        if parts:
            return 0, parts, label.casefold()
    return 1, (), label.casefold()


@dataclass
class TagNode:
    id: str
    label: str
    parent_id: Optional[str]
    children: List[str] = field(default_factory=list)


class TagTree:
    """
    标签树索引

    每次蒸馏运行时构建一次，新建的标签通过 add() 追加。
    """

    def __init__(self, tags: Optional[List[Dict]] = None):
        self.nodes: Dict[str, TagNode] = {}
        self.roots: List[str] = []
        self._depth: Dict[str, int] = {}
        tags = tags or []
        for tag in tags:
            self.nodes[tag['id']] = TagNode(tag['id'], tag['label'], tag.get('parent_id'))
        for node in self.nodes.values():
            self._link(node)

    def _link(self, node: TagNode):
        if node.parent_id is None:
            self.roots.append(node.id)
        elif node.parent_id in self.nodes:
            self.nodes[node.parent_id].children.append(node.id)

    def add(self, tag: Dict) -> TagNode:
        if tag['id'] in self.nodes:
            return self.nodes[tag['id']]
        node = TagNode(tag['id'], tag['label'], tag.get('parent_id'))
        self.nodes[node.id] = node
        self._link(node)
        self._depth.clear()
        return node

    def children(self, parent_id: Optional[str]) -> List[TagNode]:
        ids = self.roots if parent_id is None else self.nodes[parent_id].children
        return sorted((self.nodes[i] for i in ids), key=lambda n: tag_sort_key(n.label))

    def depth(self, tag_id: str) -> int:
        """根节点深度为 1；父节点缺失时在该处截止，存在环时抛出 ValueError"""
        if tag_id in self._depth:
            return self._depth[tag_id]
        chain = []
        seen = set()
        current = self.nodes.get(tag_id)
        base = 0
        while current is not None:
            if current.id in seen:
                raise ValueError(f"标签存在循环引用: {current.id}")
            if current.id in self._depth:
                base = self._depth[current.id]
                break
            seen.add(current.id)
            chain.append(current.id)
            current = self.nodes.get(current.parent_id) if current.parent_id else None
        for offset, node_id in enumerate(reversed(chain), start=1):
            self._depth[node_id] = base + offset
        return self._depth[tag_id]

    def path(self, tag_id: str) -> str:
        labels = []
        seen = set()
        current = self.nodes.get(tag_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            labels.append(current.label)
            current = self.nodes.get(current.parent_id) if current.parent_id else None
        return ' > '.join(reversed(labels))

    def leaves(self, levels: int) -> List[TagNode]:
        """没有子标签且深度等于 levels 的标签，按树的遍历顺序返回"""
        result = []

        def walk(parent_id: Optional[str]):
            for node in self.children(parent_id):
                if not node.children:
                    if self.depth(node.id) == levels:
                        result.append(node)
                else:
                    walk(node.id)

        walk(None)
        return result


@dataclass
class DistillConfig:
    project_id: str
    topic: str
    levels: int
    tags_per_level: int
    questions_per_tag: int
    model: Dict
    language: str = 'zh-CN'
    on_progress: Optional[Callable[[Dict], Any]] = None
    on_log: Optional[Callable[[str], Any]] = None


class AutoDistillService:
    """
    自动蒸馏：构建标签树 -> 为叶子标签生成问题 -> 为问题生成答案

    阶段内单个标签、单个问题的失败只记录日志；获取标签、问题列表失败会中止整个运行。
    """

    def __init__(self, api):
        self.api = api

    async def _emit(self, callback, payload):
        if callback is None:
            return
        result = callback(payload)
        if inspect.isawaitable(result):
            await result

    async def _progress(self, config: DistillConfig, **update):
        await self._emit(config.on_progress, update)

    async def _log(self, config: DistillConfig, message: str):
        logger.info(f"[distill:{config.project_id}] {message}")
        await self._emit(config.on_log, message)

    async def execute(self, config: DistillConfig) -> Dict:
        stats = {'tagsBuilt': 0, 'questionsBuilt': 0, 'datasetsBuilt': 0}
        try:
            await self._progress(config, stage='initializing', tagsTotal=0, tagsBuilt=0, questionsTotal=0,
                                 questionsBuilt=0, datasetsTotal=0, datasetsBuilt=0)
            await self._log(config, f"自动蒸馏任务开始，主题：{config.topic}，层级：{config.levels}，"
                                    f"每层标签数：{config.tags_per_level}，每个标签问题数：{config.questions_per_tag}")

            tree = TagTree(await self.api.get_all_tags(config.project_id))
            await self.build_tag_tree(config, tree, stats)
            await self.generate_questions_for_tags(config, tree, stats)
            await self.generate_datasets_for_questions(config, stats)

            await self._progress(config, stage='completed')
            await self._log(config, '自动蒸馏任务完成')
            return stats
        except TaskCancelledError:
            await self._log(config, '任务已中断，停止蒸馏')
            raise
        except Exception as e:
            logger.error(f"自动蒸馏任务执行失败: {e}")
            await self._log(config, f"任务执行出错: {e}")
            raise

    async def build_tag_tree(self, config: DistillConfig, tree: TagTree, stats: Dict):
        await self._progress(config, tagsTotal=config.tags_per_level ** config.levels)
        await self._build_level(config, tree, stats, None, '', 1)

    async def _build_level(self, config: DistillConfig, tree: TagTree, stats: Dict,
                           parent: Optional[TagNode], parent_path: str, level: int):
        await self._progress(config, stage=f'level{level}')
        if level > config.levels:
            return

        parent_id = parent.id if parent else None
        existing = tree.children(parent_id)
        needed = max(0, config.tags_per_level - len(existing))

        if needed > 0:
            parent_name = config.topic if level == 1 else parent.label
            await self._log(config, f"正在为\"{parent_name}\"构建{needed}个子标签...")
            try:
                created = await self.api.generate_tags(
                    config.project_id,
                    parent_tag=parent_name,
                    parent_tag_id=parent_id,
                    tag_path=parent_path or parent_name,
                    count=needed,
                    model=config.model,
                    language=config.language
                )
                for tag in created:
                    tree.add(tag)
                stats['tagsBuilt'] += len(created)
                await self._progress(config, tagsBuilt=len(created), updateType='increment')
                await self._log(config, f"成功构建{len(created)}个标签: {', '.join(t['label'] for t in created)}")
            except TaskCancelledError:
                raise
            except Exception as e:
                await self._log(config, f"创建{level}级标签失败: {e}")

        if level < config.levels:
            for node in tree.children(parent_id):
                path = f"{parent_path} > {node.label}" if parent_path else node.label
                await self._build_level(config, tree, stats, node, path, level + 1)

    async def generate_questions_for_tags(self, config: DistillConfig, tree: TagTree, stats: Dict):
        await self._progress(config, stage='questions')
        await self._log(config, '标签树构建完成，开始为叶子标签生成问题...')

        leaves = tree.leaves(config.levels)
        await self._log(config, f"发现{len(leaves)}个叶子标签，准备生成问题...")

        questions = await self.api.get_distill_questions(config.project_id)
        counts: Dict[str, int] = {}
        for question in questions:
            counts[question.get('label')] = counts.get(question.get('label'), 0) + 1

        await self._progress(config, questionsTotal=len(leaves) * config.questions_per_tag)

        for leaf in leaves:
            existing = counts.get(leaf.label, 0)
            needed = max(0, config.questions_per_tag - existing)
            if needed == 0:
                await self._log(config, f"标签 \"{leaf.label}\" 已有{existing}个问题，无需生成新问题")
                continue

            await self._log(config, f"正在为标签 \"{leaf.label}\" 生成{needed}个问题...")
            try:
                created = await self.api.generate_questions(
                    config.project_id,
                    tag_path=tree.path(leaf.id),
                    current_tag=leaf.label,
                    tag_id=leaf.id,
                    count=needed,
                    model=config.model,
                    language=config.language
                )
                stats['questionsBuilt'] += len(created)
                await self._progress(config, questionsBuilt=len(created), updateType='increment')
                await self._log(config, f"成功为标签 \"{leaf.label}\" 生成{len(created)}个问题")
            except TaskCancelledError:
                raise
            except Exception as e:
                await self._log(config, f"为标签 \"{leaf.label}\" 生成问题失败: {e}")

    async def generate_datasets_for_questions(self, config: DistillConfig, stats: Dict):
        await self._progress(config, stage='datasets')
        await self._log(config, '问题生成完成，开始为问题生成答案...')

        questions = await self.api.get_distill_questions(config.project_id)
        unanswered = [q for q in questions if not q.get('answered')]
        await self._progress(config, datasetsTotal=len(questions), datasetsBuilt=len(questions) - len(unanswered))
        await self._log(config, f"发现{len(unanswered)}个未回答的问题，准备生成答案...")

        for question in unanswered:
            name = f"{question.get('label')} 下的问题ID:{question['id']}"
            try:
                await self.api.generate_dataset(
                    config.project_id,
                    question_id=question['id'],
                    model=config.model,
                    language=config.language
                )
                stats['datasetsBuilt'] += 1
                await self._progress(config, datasetsBuilt=1, updateType='increment')
                await self._log(config, f"成功为问题 \"{name}\" 生成答案")
            except TaskCancelledError:
                raise
            except Exception as e:
                await self._log(config, f"为问题 \"{name}\" 生成答案失败: {e}")
