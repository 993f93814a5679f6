"""
测试配置与 fixtures（API 层）

- 每个测试构造独立的 FastAPI 应用，并注入使用内存 BlobStore 的服务容器
- ASGITransport 不会触发 lifespan，容器在 create_app 时直接挂到 app.state
"""
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import create_app


@pytest_asyncio.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def share(client: AsyncClient):
    """经 /api/upload 上传一个文件，返回响应 JSON"""

    async def _share(
        content: bytes = b"x" * 1024,
        filename: str = "data.bin",
        content_type: str = "application/octet-stream",
        **form,
    ) -> dict:
        resp = await client.post(
            "/api/upload",
            files={"file": (filename, content, content_type)},
            data={key: str(value) for key, value in form.items()},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _share
