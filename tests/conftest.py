import pytest


@pytest.fixture
def anyio_backend():
    # The API uses asyncio primitives directly (asyncio.to_thread/sleep).
    return "asyncio"
