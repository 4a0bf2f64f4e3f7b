from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from config import DATABASE_CONFIG
from utils.logger import get_logger

logger = get_logger('database', 'app')


def build_database_url() -> str:
    """优先使用 DATABASE_URL，否则按 MySQL 配置拼接"""
    if DATABASE_CONFIG['url']:
        return DATABASE_CONFIG['url']
    return (
        f"mysql+mysqlconnector://{DATABASE_CONFIG['user']}:{DATABASE_CONFIG['password']}"
        f"@{DATABASE_CONFIG['host']}:{DATABASE_CONFIG['port']}/{DATABASE_CONFIG['database']}"
    )


DATABASE_URL = build_database_url()

if DATABASE_URL.startswith('sqlite'):
    # sqlite 在 to_thread 中跨线程使用，内存库需要共享同一个连接
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
    if DATABASE_URL in ('sqlite://', 'sqlite:///:memory:'):
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, echo=False, **engine_kwargs)
else:
    engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# 创建基类
Base = declarative_base()

class DatabaseManager:
    """
    基础数据库管理器

    每次操作通过 session_scope() 获取独立会话，管理器实例可以在
    asyncio.to_thread 的不同线程中安全复用。
    """

    @contextmanager
    def session_scope(self):
        """提供一个事务范围，成功提交，异常回滚"""
        db = SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

# 创建数据库表
def create_tables():
    """创建数据库表"""
    try:
        # 导入模型以便注册到 Base.metadata
        from database import models  # noqa: F401
        Base.metadata.create_all(bind=engine)
        logger.info("数据库表创建成功")
    except Exception as e:
        logger.error(f"创建数据库表失败: {e}")
        raise

def drop_tables():
    """删除所有数据库表（测试使用）"""
    from database import models  # noqa: F401
    Base.metadata.drop_all(bind=engine)

# 数据库会话管理
def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
