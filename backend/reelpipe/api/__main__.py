"""API server entry point for python -m reelpipe.api"""
import logging

import uvicorn

from reelpipe.api.app import create_app
from reelpipe.config import load_settings

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
