"""
订单导入队列任务（Worker 用）

说明：
- API 只负责上传文件 + 入队
- ImportJob 既是“可被 worker 安全消费”的队列任务，也是给前端展示的进度记录
"""

from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import String, Integer, DateTime, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database import Base


class ImportJob(Base):
    """订单导入队列任务表"""

    __tablename__ = "import_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    job_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, comment="任务ID")
    filename: Mapped[str] = mapped_column(String(256), comment="上传后的文件名")

    # queued -> processing -> completed/failed
    status: Mapped[str] = mapped_column(String(32), default="queued", index=True, comment="队列状态")
    progress: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="当前进度描述")

    # 导入统计，示例：{"total": 10, "created": 8, "skipped": 1, "failed": 1, "errors": [...]}
    stats: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True, comment="导入统计")
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="错误信息")

    picked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, comment="被 worker 取走时间")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, comment="完成时间")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="更新时间")

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "job_id": self.job_id,
            "filename": self.filename,
            "status": self.status,
            "progress": self.progress,
            "stats": self.stats,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
