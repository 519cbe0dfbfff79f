import asyncio
import logging
from telegram.ext import Application
from .config import Config
from .database import Database, PostgresRecordStore
from .handlers import OrderHandler

logger = logging.getLogger(__name__)


class ShopdeskBot:
    def __init__(self):
        """Set up the admin bot"""
        self.database = Database(Config.DATABASE_URL)
        self.store = PostgresRecordStore(self.database)
        self.application = Application.builder().token(Config.TELEGRAM_TOKEN).build()
        self.setup_handlers()

    def setup_handlers(self):
        """Register the admin order commands"""
        self.order_handler = OrderHandler(self.store)
        for handler in self.order_handler.handlers():
            self.application.add_handler(handler)

    async def start(self):
        await self.database.connect()
        try:
            async with self.application:
                await self.application.start()
                await self.application.updater.start_polling()
                logger.info("Bot is polling for updates")
                try:
                    await asyncio.Event().wait()
                finally:
                    await self.application.updater.stop()
                    await self.application.stop()
        finally:
            await self.database.close()
