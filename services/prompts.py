"""
大模型提示词模板

每个函数根据 language 返回中文或英文提示词。
"""
import json
from typing import Dict, List, Optional


def is_english(language: Optional[str]) -> bool:
    return (language or '').strip().lower() in ('en', 'english', 'en-us')


def distill_tags_prompt(tag_path: str, parent_tag: str, existing_tags: List[str], count: int,
                        language: str = 'zh-CN', global_prompt: str = '') -> str:
    if is_english(language):
        existing = (f"Existing sub-tags: {', '.join(existing_tags)}. Do not generate duplicates of these."
                    if existing_tags else '')
        rule = f"You must follow this requirement: {global_prompt}" if global_prompt else ''
        return f"""
You are a professional knowledge tag generation assistant. Generate {count} sub-tags for the topic "{parent_tag}".

Full tag path: {tag_path}

Rules:
{rule}
1. Tags must be professional sub-categories or sub-topics within "{parent_tag}"
2. Each tag should be concise and specific, usually 1-4 words
3. Tags must be clearly distinct and cover different aspects
4. Tags should be nouns or noun phrases
5. Prefix each tag with its sequence number, e.g. "1.1 Tag", when the parent has one
{existing}

Return only a JSON array of tags without any explanation:
["Tag 1", "Tag 2", "Tag 3", ...]
"""
    existing = f"已有的子标签包括：{'、'.join(existing_tags)}，请不要生成与这些重复的标签。" if existing_tags else ''
    rule = f"你必须遵循这个要求：{global_prompt}" if global_prompt else ''
    return f"""
你是一个专业的知识标签生成助手。我需要你帮我为主题"{parent_tag}"生成{count}个子标签。

标签完整链路是：{tag_path}

请遵循以下规则：
{rule}
1. 生成的标签应该是"{parent_tag}"领域内的专业子类别或子主题
2. 每个标签应该简洁、明确，通常为2-5个字
3. 标签之间应该有明显的区分，覆盖不同的方面
4. 标签应该是名词或名词短语，不要使用动词或形容词
5. 父标签带有序号时，子标签以序号开头，例如 "1.1 标签"
{existing}

请直接以JSON数组格式返回标签，不要有任何额外的解释或说明，格式如下：
["标签1", "标签2", "标签3", ...]
"""


def distill_questions_prompt(tag_path: str, current_tag: str, count: int, existing_questions: List[str],
                             language: str = 'zh-CN', global_prompt: str = '') -> str:
    if is_english(language):
        existing = ''
        if existing_questions:
            existing = "Existing questions:\n" + '\n'.join(f"- {q}" for q in existing_questions) + \
                       "\nDo not generate duplicates of these."
        rule = f"You must follow this requirement: {global_prompt}" if global_prompt else ''
        return f"""
You are a professional question generation assistant. Generate {count} high-quality questions for the tag "{current_tag}".

Full tag path: {tag_path}

Rules:
{rule}
1. Questions must be closely related to "{current_tag}"
2. Questions should be educational and practical
3. Questions must be clear and specific
4. Vary the form: factual, conceptual, analytical
{existing}

Return only a JSON array of questions without any explanation:
["Question 1", "Question 2", ...]
"""
    existing = ''
    if existing_questions:
        existing = "已有的问题包括：\n" + '\n'.join(f"- {q}" for q in existing_questions) + "\n请不要生成与这些重复的问题。"
    rule = f"你必须遵循这个要求：{global_prompt}" if global_prompt else ''
    return f"""
你是一个专业的知识问题生成助手。我需要你帮我为标签"{current_tag}"生成{count}个高质量的问题。

标签完整链路是：{tag_path}

请遵循以下规则：
{rule}
1. 生成的问题应该与"{current_tag}"主题紧密相关
2. 问题应该具有教育价值和实用性
3. 问题应该清晰、明确，避免模糊或过于宽泛的表述
4. 问题的形式可以多样化，包括事实性问题、概念性问题、分析性问题等
{existing}

请直接以JSON数组格式返回问题，不要有任何额外的解释或说明，格式如下：
["问题1", "问题2", "问题3", ...]
"""


def answer_prompt(question: str, context: str = '', language: str = 'zh-CN', global_prompt: str = '') -> str:
    if is_english(language):
        reference = f"\nReference content:\n{context}\n" if context else ''
        rule = f"You must follow this requirement: {global_prompt}" if global_prompt else ''
        return f"""
You are a domain expert. Answer the question below accurately and thoroughly.
{rule}
{reference}
Question: {question}

Think step by step inside <think></think> first, then give the final answer after the closing tag.
"""
    reference = f"\n参考内容：\n{context}\n" if context else ''
    rule = f"你必须遵循这个要求：{global_prompt}" if global_prompt else ''
    return f"""
你是一位领域专家，请准确、完整地回答下面的问题。
{rule}
{reference}
问题：{question}

请先在 <think></think> 中逐步思考，然后在标签之后给出最终答案。
"""


def chunk_questions_prompt(text: str, number: int, language: str = 'zh-CN', global_prompt: str = '',
                           question_prompt: str = '') -> str:
    if is_english(language):
        return f"""
# Role
You are a text analysis expert who extracts key information and generates questions for model fine-tuning.
{f"You must strictly follow these rules: {global_prompt}" if global_prompt else ''}

## Task
Based on the text below ({len(text)} characters), generate no less than {number} high-quality questions.
- Questions must be answerable from the text
- Cover different aspects of the text
- No hypothetical, repetitive or similar questions
- Do not ask about the author, chapters or table of contents
{f"- When generating questions, you must follow: {question_prompt}" if question_prompt else ''}

## Output
Only a JSON array: ["Question 1", "Question 2", "..."]

## Text
{text}
"""
    return f"""
# 角色使命
你是一位专业的文本分析专家，擅长从复杂文本中提取关键信息并生成可用于模型微调的问题。
{f"在后续的任务中，你务必遵循这样的规则：{global_prompt}" if global_prompt else ''}

## 核心任务
根据用户提供的文本（长度：{len(text)} 字），生成不少于 {number} 个高质量问题。
- 问题必须能够在原文中找到答案
- 覆盖文本的不同方面
- 禁止生成假设性、重复或相似问题
- 禁止提问与作者、章节、目录等材料本身相关的问题
{f"- 在生成问题时，你务必遵循这样的规则：{question_prompt}" if question_prompt else ''}

## 输出格式
仅输出 JSON 数组：["问题1", "问题2", "..."]

## 待处理文本
{text}
"""


def add_label_prompt(tags: List[Dict], questions: List[str], language: str = 'zh-CN') -> str:
    labels = json.dumps([tag['label'] for tag in tags], ensure_ascii=False)
    question_text = json.dumps(questions, ensure_ascii=False)
    if is_english(language):
        return f"""
Assign the most relevant label from the label list to each question. Use "Other" when none fits.

Labels: {labels}
Questions: {question_text}

Return only a JSON array: [{{"question": "...", "label": "..."}}]
"""
    return f"""
请为每个问题从标签列表中选择最相关的一个标签，没有合适的标签时使用"其他"。

标签列表：{labels}
问题列表：{question_text}

仅返回 JSON 数组：[{{"question": "...", "label": "..."}}]
"""


def domain_tree_prompt(toc: str, language: str = 'zh-CN', global_prompt: str = '') -> str:
    if is_english(language):
        return f"""
You are a domain classification expert. Build a two-level domain label tree from the table of contents below.
{f"You must follow this requirement: {global_prompt}" if global_prompt else ''}
- First-level labels are numbered "1 Label", "2 Label"; second-level labels are numbered "1.1 Label"
- 5-10 first-level labels, 1-10 second-level labels each

Table of contents:
{toc}

Return only JSON: [{{"label": "1 Label", "child": [{{"label": "1.1 Label"}}]}}]
"""
    return f"""
你是一位领域分类专家，请根据下面的文献目录构建两级领域标签树。
{f"你必须遵循这个要求：{global_prompt}" if global_prompt else ''}
- 一级标签编号为 "1 标签"、"2 标签"，二级标签编号为 "1.1 标签"
- 一级标签 5-10 个，每个一级标签下 1-10 个二级标签

文献目录：
{toc}

仅返回 JSON：[{{"label": "1 标签", "child": [{{"label": "1.1 标签"}}]}}]
"""


def domain_tree_revise_prompt(existing_tags: List[Dict], toc: str, language: str = 'zh-CN',
                              global_prompt: str = '') -> str:
    tree = json.dumps(existing_tags, ensure_ascii=False, indent=2)
    if is_english(language):
        return f"""
You are a domain classification expert. Merge the newly added table of contents into the existing domain label tree.
You may rename or re-nest labels so the merged tree stays consistent. Keep the numbering rules of the existing tree.
{f"You must follow this requirement: {global_prompt}" if global_prompt else ''}

Existing tree:
{tree}

New table of contents:
{toc}

Return only the complete merged tree as JSON: [{{"label": "1 Label", "child": [{{"label": "1.1 Label"}}]}}]
"""
    return f"""
你是一位领域分类专家，请把新增文献的目录合并到现有的领域标签树中。
可以调整标签名称或层级，保证合并后的标签树结构一致，并沿用现有编号规则。
{f"你必须遵循这个要求：{global_prompt}" if global_prompt else ''}

现有标签树：
{tree}

新增文献目录：
{toc}

仅返回合并后的完整标签树 JSON：[{{"label": "1 标签", "child": [{{"label": "1.1 标签"}}]}}]
"""


def vision_page_prompt(language: str = 'zh-CN') -> str:
    if is_english(language):
        return ("Convert the content of this PDF page image into Markdown. Keep headings, lists, tables and formulas. "
                "Output only the Markdown content without explanations or code fences.")
    return "请把这张 PDF 页面图片的内容转换为 Markdown，保留标题、列表、表格和公式。只输出 Markdown 内容，不要解释，不要使用代码块包裹。"


def retitle_prompt(headings: List[str], language: str = 'zh-CN') -> str:
    heading_text = json.dumps(headings, ensure_ascii=False)
    if is_english(language):
        return f"""
The following Markdown headings were extracted page by page and their levels are inconsistent.
Reassign heading levels so the document outline is coherent. Keep the heading text and order unchanged.

Headings: {heading_text}

Return only a JSON array of the same length with the corrected headings, e.g. ["# Title", "## Section"]
"""
    return f"""
下面的 Markdown 标题是逐页提取的，层级不一致。
请重新调整标题层级，使文档大纲结构合理，标题文字和顺序保持不变。

标题列表：{heading_text}

仅返回等长的 JSON 数组，包含修正后的标题，例如 ["# 标题", "## 小节"]
"""


def ga_prompt(text: str, language: str = 'zh-CN') -> str:
    if is_english(language):
        return f"""#Identity and Capabilities#
You are a content creation expert, specializing in text analysis and rewriting, skilled at adapting content based on
varying [genres] and [audiences] to produce diverse and high-quality texts.

#Workflow#
Generate 5 pairs of [genre] and [audience] combinations suitable for the original text:
1. First, analyze the characteristics of the source text, including writing style, information content, and value
2. Then, consider how to preserve the primary content while exploring broader audiences and alternative genres

#Detailed Requirements#
[Genres]: strongly diverse, text-only, each with a 2-3 sentence description of type, style, tone and form.
[Audiences]: strongly diverse, including uninterested parties, each with a 2 sentence description of age,
occupation, background, motivations and cognitive level.

#Response (strictly this format and nothing else)#
{{
    "audience_1": {{"title": "Audience 1 Name", "description": "Detailed audience description..."}},
    "genre_1": {{"title": "Genre 1 Name", "description": "Detailed genre description..."}},
    ...
    "audience_5": {{"title": "Audience 5 Name", "description": "Detailed audience description..."}},
    "genre_5": {{"title": "Genre 5 Name", "description": "Detailed genre description..."}}
}}

#Input#
{text}"""
    return f"""#身份和能力#
您是一位内容创作专家，专精于文本分析和改写，擅长根据不同的[体裁]和[受众]来调整内容，产出多样化和高质量的文本。

#工作流程#
请为原始文本生成5对适合的[体裁]和[受众]组合：
1. 首先分析源文本的特点，包括写作风格、信息内容和价值
2. 然后考虑如何在保持主要内容的同时，探索更广泛受众和替代体裁的可能性

#详细要求#
[体裁]：表现出强烈的多样性，仅限纯文本体裁，每种体裁用2-3句话描述类型、风格、情感基调和形式。
[受众]：表现出强烈的多样性，包括不感兴趣的人群，每个受众用2句话描述年龄、职业、教育背景、动机和认知水平。

#回复（必须严格遵循以下格式，不得包含其他信息）#
{{
    "audience_1": {{"title": "受众1名称", "description": "详细的受众描述..."}},
    "genre_1": {{"title": "体裁1名称", "description": "详细的体裁描述..."}},
    ...
    "audience_5": {{"title": "受众5名称", "description": "详细的受众描述..."}},
    "genre_5": {{"title": "体裁5名称", "description": "详细的体裁描述..."}}
}}

#输入#
{text}"""
