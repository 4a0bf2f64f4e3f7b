from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from routers.tasks import router as tasks_router
from routers.distill import router as distill_router
from routers.ga_pairs import router as ga_pairs_router
from database import create_tables
from services.context import AppContext
from services.errors import TaskServiceError, ParameterError, ConfigurationError
import uvicorn
from config import SERVER_CONFIG
from utils.logger import get_logger
from utils.response import error
import time

# 获取日志记录器 - 使用系统日志类型
logger = get_logger('main', 'app')
# 获取访问日志记录器
access_logger = get_logger('access', 'access')


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables()
    context = AppContext()
    app.state.context = context
    await context.startup()
    try:
        yield
    finally:
        await context.shutdown()


app = FastAPI(
    title="WeDataset Task APIs",
    version="0.1.0",
    description="文档解析、文本分割、领域树、数据蒸馏与 GA 对生成的后台任务接口",
    lifespan=lifespan
)

# 访问日志中间件
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    client = f"{request.client.host}:{request.client.port}" if request.client else "-"
    access_logger.info(
        f'{client} - "{request.method} {request.url.path} HTTP/{request.scope.get("http_version", "1.1")}" {response.status_code} - {process_time:.3f}s'
    )

    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 全局请求校验异常处理
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    logger.error(f"参数校验失败: {exc.errors()}")
    return JSONResponse(status_code=400, content=error(
        message="参数校验失败，请检查请求参数",
        code=400,
        data={"detail": jsonable_errors(exc)}
    ))


@app.exception_handler(ParameterError)
@app.exception_handler(ConfigurationError)
async def bad_request_handler(request, exc: TaskServiceError):
    logger.error(f"请求参数或配置错误: {exc}")
    return JSONResponse(status_code=400, content=error(message=str(exc), code=400))


@app.exception_handler(TaskServiceError)
async def task_service_error_handler(request, exc: TaskServiceError):
    logger.error(f"服务处理失败: {exc.__class__.__name__}: {exc}")
    return JSONResponse(status_code=500, content=error(message=str(exc), code=500))


def jsonable_errors(exc: RequestValidationError):
    return [{'loc': list(e.get('loc', ())), 'msg': e.get('msg'), 'type': e.get('type')} for e in exc.errors()]


app.include_router(tasks_router)
app.include_router(distill_router)
app.include_router(ga_pairs_router)


if __name__ == "__main__":
    logger.info(f"启动服务器: {SERVER_CONFIG['host']}:{SERVER_CONFIG['port']}")

    uvicorn.run(
        "main:app",
        host=SERVER_CONFIG['host'],
        port=SERVER_CONFIG['port'],
        reload=SERVER_CONFIG['reload'],
        access_log=False  # 禁用默认访问日志，使用自定义中间件
    )
