import logging
from telegram import Update
from telegram.ext import ContextTypes
from ..auth import identity_for, require_admin
from ..database.record_store import RecordStore
from ..errors import ShopdeskError
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

logger = logging.getLogger(__name__)


class BaseHandler:
    """Base class for handlers"""
    def __init__(self, store: RecordStore):
        self.store = store
        self.keyboards = Keyboards()
        self.messages = Messages()

    @staticmethod
    def admin_id(update: Update) -> str:
        """Acting admin id; raises PermissionDeniedError for other users"""
        user = update.effective_user
        return require_admin(identity_for(user.id))

    @staticmethod
    async def reply(update: Update, text: str, **kwargs):
        if update.callback_query:
            await update.callback_query.edit_message_text(text, **kwargs)
        else:
            await update.effective_message.reply_text(text, **kwargs)

    async def report_error(self, update: Update, error: ShopdeskError):
        """Turn a service error into a readable reply"""
        logger.warning(f"Admin action failed: {error}")
        await self.reply(update, f"❌ {error}")

    @staticmethod
    async def usage(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str):
        await update.effective_message.reply_text(f"ℹ️ Usage: {text}")
