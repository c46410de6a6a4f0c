"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import aiosqlite
import pytest_asyncio
from bytefixers.core.models import Project, Task
from bytefixers.core.services import TrackingService


@pytest_asyncio.fixture
async def core_db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """核心层已初始化数据库连接"""
    from bytefixers.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_path / "core_test.db"))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def project(tracking: TrackingService) -> Project:
    """空项目"""
    return await tracking.create_project("Apollo", created_by="u-owner")


@pytest_asyncio.fixture
async def task(tracking: TrackingService, project: Project) -> Task:
    """项目下的一个 TO DO 任务"""
    return await tracking.create_task(
        project.id,
        {"title": "Write launch plan", "status": "TO DO"},
        actor_id="u-owner",
    )
