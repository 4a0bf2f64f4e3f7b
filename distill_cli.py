"""
命令行运行自动蒸馏：通过 REST 接口调用正在运行的服务

示例:
    python distill_cli.py <project_id> "机器学习" --levels 2 --tags-per-level 5 \
        --questions-per-tag 3 --model model.json --base-url http://127.0.0.1:8093
"""
import argparse
import asyncio
import json
import os
import sys
from services.auto_distill import AutoDistillService, DistillConfig
from services.distill_api import HttpDistillApi
from config import DISTILL_CONFIG
from utils.logger import get_logger

logger = get_logger('distill_cli', 'business')


def load_model(value: str) -> dict:
    """--model 既可以是 JSON 字符串，也可以是 JSON 文件路径"""
    if os.path.isfile(value):
        with open(value, 'r', encoding='utf-8') as f:
            return json.load(f)
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"模型配置不是合法的 JSON: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="自动蒸馏：构建标签树、生成问题和答案")
    parser.add_argument('project_id', help="项目ID")
    parser.add_argument('topic', help="蒸馏主题")
    parser.add_argument('--levels', type=int, default=2, help="标签树层级")
    parser.add_argument('--tags-per-level', type=int, default=5, help="每层标签数")
    parser.add_argument('--questions-per-tag', type=int, default=5, help="每个叶子标签的问题数")
    parser.add_argument('--model', type=load_model, required=True, help="模型配置（JSON 字符串或文件）")
    parser.add_argument('--language', default='zh-CN')
    parser.add_argument('--base-url', default=DISTILL_CONFIG['api_base_url'], help="服务地址")
    return parser


def print_progress(update: dict):
    stage = update.get('stage')
    if stage:
        print(f"[{stage}] {json.dumps(update, ensure_ascii=False)}")


async def run(args) -> dict:
    api = HttpDistillApi(base_url=args.base_url)
    config = DistillConfig(
        project_id=args.project_id,
        topic=args.topic,
        levels=args.levels,
        tags_per_level=args.tags_per_level,
        questions_per_tag=args.questions_per_tag,
        model=args.model,
        language=args.language,
        on_progress=print_progress,
        on_log=print
    )
    try:
        return await AutoDistillService(api).execute(config)
    finally:
        await api.close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.levels < 1 or args.tags_per_level < 1 or args.questions_per_tag < 1:
        print("levels、tags-per-level、questions-per-tag 必须为正整数", file=sys.stderr)
        return 2
    try:
        stats = asyncio.run(run(args))
    except Exception as e:
        logger.error(f"自动蒸馏失败: {e}")
        print(f"自动蒸馏失败: {e}", file=sys.stderr)
        return 1
    print(json.dumps(stats, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
