# main.py
import asyncio
import logging
from shopdesk.bot import ShopdeskBot
from shopdesk.config import Config, setup_logging

async def main():
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        Config.validate()
        bot = ShopdeskBot()
        logger.info("Starting bot...")
        await bot.start()
    except Exception as e:
        logger.error(f"Error starting bot: {e}", exc_info=True)
        raise

if __name__ == "__main__":
    asyncio.run(main())
