import asyncio
import sys

from runners_awareness.app.core.config import settings
from runners_awareness.app.core.logging_config import setup_logging
from runners_awareness.app.db import init_models


if __name__ == "__main__":
    # Drops and recreates every table - DEV MODE ONLY
    setup_logging(settings.LOG_LEVEL)
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(init_models(drop_existing=True))
    print(">>> Tables Created Successfully!")
