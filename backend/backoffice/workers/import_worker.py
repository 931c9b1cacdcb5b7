"""
导入 Worker（队列消费）

- API 只负责上传文件 + 入队
- Worker 从 DB 队列表取任务执行订单导入
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.config import Settings, get_settings
from backoffice.database import async_session_maker, begin_write
from backoffice.models.import_job import ImportJob
from backoffice.services.excel_import import ExcelImportService

logger = structlog.get_logger(__name__)


class ImportWorker:
    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        settings: Optional[Settings] = None,
    ):
        self._stop_event = asyncio.Event()
        self.session_maker = session_maker or async_session_maker
        self.settings = settings or get_settings()

    def stop(self):
        self._stop_event.set()

    async def _update_job(self, db: AsyncSession, job_id: int, **kwargs):
        await db.execute(
            update(ImportJob).where(ImportJob.id == job_id).values(updated_at=datetime.now(), **kwargs)
        )
        await db.commit()

    async def _cleanup_old_jobs(self, db: AsyncSession, max_jobs: int = 50):
        """只保留最近 max_jobs 个已结束的任务"""
        await begin_write(db)
        result = await db.execute(
            select(ImportJob.id)
            .where(ImportJob.status.in_(("completed", "failed")))
            .order_by(ImportJob.created_at.desc())
        )
        finished = [row[0] for row in result.all()]
        if len(finished) <= max_jobs:
            await db.commit()
            return

        await db.execute(delete(ImportJob).where(ImportJob.id.in_(finished[max_jobs:])))
        await db.commit()

    async def _claim_one_job(self, db: AsyncSession) -> Optional[ImportJob]:
        """尝试领取一个 queued 的任务（通过 update 条件保证多 worker 不重复消费）"""
        await begin_write(db)
        result = await db.execute(
            select(ImportJob)
            .where(ImportJob.status == "queued")
            .order_by(ImportJob.created_at.asc())
            .limit(1)
        )
        job = result.scalar_one_or_none()
        if not job:
            await db.commit()
            return None

        now = datetime.now()
        claim_result = await db.execute(
            update(ImportJob)
            .where(ImportJob.id == job.id, ImportJob.status == "queued")
            .values(status="processing", picked_at=now, updated_at=now)
        )
        await db.commit()

        if (claim_result.rowcount or 0) != 1:
            return None

        # 重新读取最新 job
        refreshed = await db.execute(
            select(ImportJob).where(ImportJob.id == job.id).execution_options(populate_existing=True)
        )
        job = refreshed.scalar_one()
        await db.commit()
        return job

    async def process_job(self, job: ImportJob):
        path = os.path.join(self.settings.upload_dir, job.filename)
        log = logger.bind(job_id=job.job_id, filename=job.filename)

        # 进度写入用单独的会话，不和导入事务混在一起
        async with self.session_maker() as progress_db:

            async def on_progress(message: str):
                await self._update_job(progress_db, job.id, progress=message)

            try:
                await on_progress("正在导入订单...")
                async with self.session_maker() as db:
                    stats = await ExcelImportService(db, self.settings).import_orders(path, on_progress)

                await self._update_job(
                    progress_db,
                    job.id,
                    status="completed",
                    progress="完成",
                    stats=stats,
                    completed_at=datetime.now(),
                )
                log.info("导入任务完成", created=stats["created"], failed=stats["failed"])
                await self._cleanup_old_jobs(progress_db)
            except Exception as e:
                # 任务失败：记录到 ImportJob
                await progress_db.rollback()
                await self._update_job(
                    progress_db,
                    job.id,
                    status="failed",
                    progress="失败",
                    error=str(e),
                    completed_at=datetime.now(),
                )
                log.exception("导入任务失败")

    async def run_once(self) -> bool:
        """领取并执行一个任务；队列为空返回 False"""
        async with self.session_maker() as db:
            job = await self._claim_one_job(db)
        if not job:
            return False
        await self.process_job(job)
        return True

    async def run_forever(self):
        """循环消费队列任务"""
        poll_interval = self.settings.import_worker_poll_interval

        while not self._stop_event.is_set():
            try:
                if not await self.run_once():
                    await asyncio.sleep(poll_interval)
            except Exception:
                # 避免 worker 崩溃，短暂休眠再继续
                logger.exception("导入 worker 异常")
                await asyncio.sleep(poll_interval)
