#!/usr/bin/env python
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from loguru import logger

if __name__ == "__main__":
    load_dotenv(Path.cwd() / ".env")
    from src.inspector.config import config

    log_level = config.log_level.upper()
    logger.remove()
    logger.add(sys.stderr, level=log_level)
    logger.info("Network inspector certificate provider, start running!")

    uvicorn.run(
        "src.inspector.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=log_level.lower(),
    )
