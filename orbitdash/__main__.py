"""
Run the orbitdash server.

Usage:
    python -m orbitdash
"""

import uvicorn

from .common.config import get_settings
from .main import create_app


def main() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
