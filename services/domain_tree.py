import asyncio
from typing import Dict, List, Optional
from database.project_manager import ProjectManager
from database.tag_manager import TagManager
from services.errors import ParameterError
from services.llm_client import create_llm_client
from services.prompts import domain_tree_prompt, domain_tree_revise_prompt
from utils.json_utils import extract_json
from utils.logger import get_logger

logger = get_logger('domain_tree', 'business')

DOMAIN_TREE_ACTIONS = ('rebuild', 'append', 'keep')

project_manager = ProjectManager()
tag_manager = TagManager()


def nest_tags(tags: List[Dict]) -> List[Dict]:
    """扁平标签列表转为 [{"label", "child": [...]}] 结构"""
    children: Dict[Optional[str], List[Dict]] = {}
    for tag in tags:
        children.setdefault(tag['parent_id'], []).append(tag)

    def build(parent_id: Optional[str], seen: set) -> List[Dict]:
        nodes = []
        for tag in children.get(parent_id, []):
            if tag['id'] in seen:
                continue
            nodes.append({'label': tag['label'], 'child': build(tag['id'], seen | {tag['id']})})
        return nodes

    return build(None, set())


def validate_tree(data) -> List[Dict]:
    if isinstance(data, dict):
        data = data.get('tags') or data.get('tree') or data.get('domainTree')
    if not isinstance(data, list) or not data:
        raise ValueError("领域树格式不正确")

    def clean(nodes) -> List[Dict]:
        result = []
        for node in nodes:
            if not isinstance(node, dict) or not str(node.get('label', '')).strip():
                raise ValueError(f"领域树节点格式不正确: {node}")
            result.append({'label': str(node['label']).strip(), 'child': clean(node.get('child') or [])})
        return result

    return clean(data)


async def handle_domain_tree(project_id: str, new_toc: str, model: Optional[Dict], language: str = 'zh-CN',
                             action: str = 'rebuild', file_list: Optional[List[Dict]] = None,
                             project: Optional[Dict] = None) -> Optional[List[Dict]]:
    """
    根据目录更新项目领域树

    keep 不做任何修改返回 None；rebuild / append 成功返回保存后的标签列表，
    大模型调用或解析失败返回 None。
    """
    action = action or 'rebuild'
    if action not in DOMAIN_TREE_ACTIONS:
        raise ParameterError(f"无效的领域树操作: {action}")
    if action == 'keep':
        logger.info(f"保留现有领域树: project={project_id}")
        return None

    try:
        if project is None:
            project = await asyncio.to_thread(project_manager.get_project, project_id)
        global_prompt = (project or {}).get('global_prompt') or ''
        client = create_llm_client(model)

        if action == 'append':
            existing = await asyncio.to_thread(tag_manager.get_tags, project_id)
            if existing:
                prompt = domain_tree_revise_prompt(nest_tags(existing), new_toc, language, global_prompt)
            else:
                prompt = domain_tree_prompt(new_toc, language, global_prompt)
            toc = '\n'.join(t for t in ((project or {}).get('toc') or '', new_toc) if t)
        else:
            prompt = domain_tree_prompt(new_toc, language, global_prompt)
            toc = new_toc

        reply = await client.get_response(prompt)
        tree = validate_tree(extract_json(reply))
        tags = await asyncio.to_thread(tag_manager.replace_tag_tree, project_id, tree)
        await asyncio.to_thread(project_manager.update_project, project_id, toc=toc)
    except Exception as e:
        names = [f.get('file_name') for f in file_list or []]
        logger.error(f"领域树处理失败: project={project_id}, action={action}, files={names}, {e}")
        return None

    logger.info(f"领域树处理完成: project={project_id}, action={action}, 共 {len(tags)} 个标签")
    return tags
