"""
FastAPI 应用入口点。
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from src.inspector.certs.errors import ToolchainUnavailableError
from src.inspector.certs.router import router as certificates_router
from src.inspector.config import config


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 启动时先准备好 CA 与服务端证书，首个 CSR 到达时无需等待生成
    from src.inspector.certs.services import secure_server_config_service

    try:
        server_config = await secure_server_config_service()
        logger.info(f"服务端证书已就绪（{len(server_config.cert)} 字节）")
    except ToolchainUnavailableError as e:
        logger.warning(f"启动时未能准备服务端证书：{e}")
    yield


app = FastAPI(title=config.app_name, lifespan=lifespan)

app.include_router(certificates_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4)}")
