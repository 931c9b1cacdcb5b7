"""
FastAPI 应用入口
"""
import os
import asyncio
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from backoffice.config import get_settings
from backoffice.database import init_db
from backoffice.api import api_router
from backoffice.api.orders import to_response
from backoffice.schemas.common import ServiceResponse
from backoffice.utils.logging import add_context, clear_context, configure_logging
from backoffice.workers.import_worker import ImportWorker

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    configure_logging(settings)
    # 启动时初始化数据库
    await init_db()
    # 确保上传目录存在
    os.makedirs(settings.upload_dir, exist_ok=True)

    # 启动导入 worker（可通过配置关闭，改用独立进程）
    worker_task: asyncio.Task | None = None
    worker: ImportWorker | None = None
    if settings.enable_import_worker:
        worker = ImportWorker()
        worker_task = asyncio.create_task(worker.run_forever())

    yield
    # 关闭时清理资源
    if worker:
        worker.stop()
    if worker_task:
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="订单后台系统",
    description="订单创建、修改、取消及库存管理",
    version="1.0.0",
    lifespan=lifespan,
)

# 配置 CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """每个请求的日志带上 request_id"""
    clear_context()
    add_context(request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12])
    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败：与服务层一致，返回 400 的 ServiceResponse"""
    errors = [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    return to_response(ServiceResponse.failure("请求参数不合法", {"errors": errors}, 400))


# 注册路由
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """根路径"""
    return {
        "name": "订单后台系统",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backoffice.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
