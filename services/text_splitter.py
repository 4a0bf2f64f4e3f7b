import asyncio
import os
import re
from typing import Dict, List, Tuple
from database.file_manager import FileManager, markdown_name, read_project_file
from database.project_manager import ProjectManager
from services.errors import SplitError
from utils.logger import get_logger

logger = get_logger('text_splitter', 'business')

HEADING_LINE_RE = re.compile(r'^(#{1,6})\s+(.+?)\s*#*\s*$')

file_manager = FileManager()
project_manager = ProjectManager()


def parse_sections(markdown: str) -> Tuple[List[Dict], List[Tuple[int, str]]]:
    """
    按 Markdown 标题切分章节

    Returns:
        (sections, headings)，section 为 {"path": [...], "text": str}，
        headings 为 (level, title) 列表
    """
    sections = []
    headings = []
    stack: List[Tuple[int, str]] = []
    current = {'path': [], 'lines': []}

    in_code = False
    for line in markdown.splitlines():
        if line.strip().startswith('```'):
            in_code = not in_code
        match = None if in_code else HEADING_LINE_RE.match(line)
        if match:
            if any(l.strip() for l in current['lines']):
                sections.append(current)
            level, title = len(match.group(1)), match.group(2).strip()
            headings.append((level, title))
            while stack and stack[-1][0] >= level:
                stack.pop()
            stack.append((level, title))
            current = {'path': [t for _, t in stack], 'lines': [line]}
        else:
            current['lines'].append(line)
    if any(l.strip() for l in current['lines']):
        sections.append(current)

    return [{'path': s['path'], 'text': '\n'.join(s['lines']).strip()} for s in sections], headings


def build_toc(headings: List[Tuple[int, str]]) -> str:
    if not headings:
        return ''
    base = min(level for level, _ in headings)
    return '\n'.join(f"{'  ' * (level - base)}- {title}" for level, title in headings)


def split_long_text(text: str, max_length: int) -> List[str]:
    """按段落切分超长文本，单个段落超长时硬切"""
    pieces = []
    buffer = ''
    for paragraph in re.split(r'\n\s*\n', text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        while len(paragraph) > max_length:
            if buffer:
                pieces.append(buffer)
                buffer = ''
            pieces.append(paragraph[:max_length])
            paragraph = paragraph[max_length:]
        candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
        if len(candidate) > max_length:
            pieces.append(buffer)
            buffer = paragraph
        else:
            buffer = candidate
    if buffer:
        pieces.append(buffer)
    return pieces


def split_markdown(markdown: str, min_length: int, max_length: int) -> Tuple[List[Dict], str]:
    """
    切分 Markdown 为文本块

    小章节向后合并直到达到 min_length，超过 max_length 的章节按段落切开。
    """
    sections, headings = parse_sections(markdown)
    pieces: List[Dict] = []
    pending = None

    for section in sections:
        if pending is None:
            pending = {'path': section['path'], 'text': section['text']}
        else:
            pending['text'] = f"{pending['text']}\n\n{section['text']}"
        if len(pending['text']) >= min_length:
            pieces.append(pending)
            pending = None
    if pending is not None:
        if pieces and len(pieces[-1]['text']) + len(pending['text']) <= max_length:
            pieces[-1]['text'] = f"{pieces[-1]['text']}\n\n{pending['text']}"
        else:
            pieces.append(pending)

    chunks = []
    for piece in pieces:
        for text in split_long_text(piece['text'], max_length) if len(piece['text']) > max_length else [piece['text']]:
            chunks.append({'path': piece['path'], 'content': text})
    return chunks, build_toc(headings)


def _split_and_save(project_id: str, file: Dict) -> Dict:
    file_name = file['file_name']
    config = project_manager.get_task_config(project_id)
    min_length = int(config['textSplitMinLength'])
    max_length = int(config['textSplitMaxLength'])

    markdown = read_project_file(project_id, markdown_name(file_name))
    pieces, toc = split_markdown(markdown, min_length, max_length)

    stem = os.path.splitext(file_name)[0]
    chunks = [{
        'name': f"{stem}-part-{index}",
        'content': piece['content'],
        'summary': ' > '.join(piece['path']) or stem
    } for index, piece in enumerate(pieces, start=1)]
    saved = file_manager.replace_file_chunks(project_id, file['file_id'], file_name, chunks)
    return {'toc': toc, 'chunks': saved, 'total_chunks': len(saved)}


async def split_project_file(project_id: str, file: Dict) -> Dict:
    """
    切分项目文件并保存文本块

    Args:
        file: {"file_id": ..., "file_name": ...}

    Returns:
        {"toc": str, "chunks": [...], "total_chunks": int}
    """
    try:
        result = await asyncio.to_thread(_split_and_save, project_id, file)
    except Exception as e:
        logger.error(f"文本分割失败: {file.get('file_name')}, {e}")
        raise SplitError(f"文本分割失败: {file.get('file_name')}, {e}") from e
    logger.info(f"文本分割完成: {file['file_name']}, 共 {result['total_chunks']} 个文本块")
    return result
