from __future__ import annotations

import logging

import uvicorn

from querylens.config import get_settings
from querylens.host import create_app

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(levelname)s:%(name)s:%(message)s",
)

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.lens_host, port=settings.lens_port)
