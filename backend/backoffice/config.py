"""
应用配置模块
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """应用配置"""

    # 数据库配置
    database_url: str = "sqlite+aiosqlite:///./backoffice.db"

    # SQLAlchemy 日志（需要排查 SQL 时再打开）
    sqlalchemy_echo: bool = False

    # 是否启用导入 Worker（生产/多进程部署时可关闭，改用单独 worker 进程）
    enable_import_worker: bool = True
    import_worker_poll_interval: float = 1.0

    # 服务配置
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = True

    # 日志配置
    log_level: str = "INFO"
    log_json: bool = False

    # 文件上传目录
    upload_dir: str = "./uploads"

    # 订单编号：OID-<时间戳后4位>-<4位随机数>
    order_code_prefix: str = "OID"
    order_code_max_attempts: int = 5

    # 取消订单时是否把数量加回到商品的所有规格（旧行为），默认只退回下单时扣减的规格
    cancel_restock_all_variants: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """获取应用配置（缓存）"""
    return Settings()
