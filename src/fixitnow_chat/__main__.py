"""Entrypoint: python -m fixitnow_chat"""
from __future__ import annotations

import uvicorn

from fixitnow_chat.config import settings


def main() -> None:
    uvicorn.run(
        "fixitnow_chat.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
