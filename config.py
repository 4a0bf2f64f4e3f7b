import os
from dotenv import load_dotenv
from pathlib import Path

BASE_DIR = Path(__file__).parent.resolve()
# 根据环境变量加载对应的配置文件
ENV = os.getenv('ENV', 'production')
env_file = BASE_DIR / f'env.{ENV}'

if os.path.exists(env_file):
    load_dotenv(env_file)
    print(f"✅ 加载环境配置文件: {env_file}")
else:
    print(f"⚠️  环境配置文件 {env_file} 不存在，使用默认配置")

# 基础配置
BASE_CONFIG = {
    'env': ENV,
    'debug': os.getenv('DEBUG', 'false').lower() == 'true',
    'log_level': 'DEBUG' if os.getenv('DEBUG', 'false').lower() == 'true' else 'INFO'
}

# 数据库配置
DATABASE_CONFIG = {
    'host': os.getenv('DATABASE_HOST', '127.0.0.1'),
    'port': int(os.getenv('DATABASE_PORT', 3306)),
    'database': os.getenv('DATABASE_NAME', 'wedataset'),
    'user': os.getenv('DATABASE_USER', 'root'),
    'password': os.getenv('DATABASE_PASSWORD', '123456'),
    # 直接指定连接串时优先使用（测试环境使用 sqlite://）
    'url': os.getenv('DATABASE_URL', '')
}

# 服务器配置
SERVER_CONFIG = {
    'host': os.getenv('SERVER_HOST', '0.0.0.0'),
    'port': int(os.getenv('SERVER_PORT', 8093)),
    'reload': os.getenv('RELOAD', 'false').lower() == 'true'
}

# 文件配置
FILE_CONFIG = {
    'project_root': os.getenv('PROJECT_ROOT', str(BASE_DIR / 'local-db')),
    'allowed_file_types': ['pdf', 'docx', 'txt', 'md'],
    'max_content_length': int(os.getenv('GA_MAX_CONTENT_LENGTH', 50000))  # GA 生成时截取的最大字符数
}

# 日志配置
LOG_CONFIG = {
    'log_dir': os.getenv('LOG_DIR', 'logs'),
    'log_level': os.getenv('LOG_LEVEL', 'INFO'),
    'console_level': os.getenv('LOG_CONSOLE_LEVEL', 'INFO'),
    'log_format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'date_format': '%Y-%m-%d %H:%M:%S',
    'max_bytes': int(os.getenv('LOG_MAX_BYTES', 10 * 1024 * 1024)),  # 10MB
    'backup_count': int(os.getenv('LOG_BACKUP_COUNT', 5)),
    'encoding': 'utf-8'
}

# 大模型调用配置
LLM_CONFIG = {
    'timeout': int(os.getenv('LLM_TIMEOUT', 600)),
    'temperature': float(os.getenv('LLM_TEMPERATURE', 0.7)),
    'max_tokens': int(os.getenv('LLM_MAX_TOKENS', 8192)),
    'ga_temperature': 0.7,
    'ga_max_tokens': 2000
}

# 项目任务配置默认值（项目可单独覆盖）
TASK_CONFIG = {
    'textSplitMinLength': int(os.getenv('TEXT_SPLIT_MIN_LENGTH', 1500)),
    'textSplitMaxLength': int(os.getenv('TEXT_SPLIT_MAX_LENGTH', 2000)),
    'questionGenerationLength': int(os.getenv('QUESTION_GENERATION_LENGTH', 240)),
    'questionMaskRemovingProbability': int(os.getenv('QUESTION_MASK_REMOVING_PROBABILITY', 60)),
    'concurrencyLimit': int(os.getenv('CONCURRENCY_LIMIT', 5)),
    'visionConcurrencyLimit': int(os.getenv('VISION_CONCURRENCY_LIMIT', 5))
}

# 任务队列配置
QUEUE_CONFIG = {
    'workers': int(os.getenv('TASK_WORKERS', 2)),
    'max_retries': int(os.getenv('TASK_MAX_RETRIES', 0)),  # 核心流程默认不自动重试
    'retry_backoff': float(os.getenv('TASK_RETRY_BACKOFF', 2.0))
}

# 蒸馏命令行默认配置
DISTILL_CONFIG = {
    'api_base_url': os.getenv('DISTILL_API_BASE_URL', f"http://127.0.0.1:{SERVER_CONFIG['port']}"),
    'timeout': float(os.getenv('DISTILL_API_TIMEOUT', 600))
}


# 打印当前环境信息
print(f"🌍 当前环境: {ENV}")
print(f"🔧 调试模式: {BASE_CONFIG['debug']}")
print(f"🗄️  数据库: {DATABASE_CONFIG['url'] or DATABASE_CONFIG['host'] + ':' + str(DATABASE_CONFIG['port']) + '/' + DATABASE_CONFIG['database']}")
print(f"🌐 服务器: {SERVER_CONFIG['host']}:{SERVER_CONFIG['port']}")
print(f"📁 项目目录: {FILE_CONFIG['project_root']}")
print(f"📝 日志目录: {LOG_CONFIG['log_dir']}")
