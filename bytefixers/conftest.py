"""全局 pytest 配置 -- 临时 SQLite 数据库与服务 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from bytefixers.core.services import CalendarService, TrackingService
from bytefixers.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的 StoreGroup（共享连接）"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def tracking(store_group: StoreGroup) -> TrackingService:
    """TrackingService 实例"""
    return TrackingService(store_group)


@pytest_asyncio.fixture
async def calendar(store_group: StoreGroup, tracking: TrackingService) -> CalendarService:
    """CalendarService 实例（与 tracking 共享 StoreGroup）"""
    return CalendarService(store_group, tracking)
