"""
文件上传 API
"""
import os
import shutil
import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database import get_db
from backoffice.config import get_settings
from backoffice.models.import_job import ImportJob

router = APIRouter()


@router.post("/orders")
async def upload_orders(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
):
    """
    上传订单Excel文件（后台异步处理）

    立即返回任务ID，由导入 worker 异步消费
    """
    # 验证文件类型
    if not file.filename or not file.filename.endswith(('.xlsx', '.xls')):
        raise HTTPException(status_code=400, detail="只支持Excel文件(.xlsx, .xls)")

    # 创建上传目录
    upload_dir = get_settings().upload_dir
    os.makedirs(upload_dir, exist_ok=True)

    # 保存文件
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    job_id = f"orders_{timestamp}_{uuid.uuid4().hex[:6]}"
    filename = f"{job_id}_{os.path.basename(file.filename)}"
    file_path = os.path.join(upload_dir, filename)

    try:
        with open(file_path, "wb") as buffer:
            shutil.copyfileobj(file.file, buffer)

        # 入队：由 worker 异步消费
        job = ImportJob(job_id=job_id, filename=filename, status="queued", progress="排队中...")
        db.add(job)
        await db.commit()

        return {
            "message": "订单文件已上传，已进入队列，后台将自动导入。",
            "job_id": job_id,
            "filename": filename,
        }
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"上传失败: {str(e)}")
    finally:
        file.file.close()


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, db: AsyncSession = Depends(get_db)):
    """获取导入任务状态"""
    result = await db.execute(select(ImportJob).where(ImportJob.job_id == job_id))
    job = result.scalar_one_or_none()

    if not job:
        raise HTTPException(status_code=404, detail="任务不存在")

    return job.to_dict()
