import asyncio

from config.settings import settings
from realtime.chat_inbox import ChatInbox
from realtime.connection_manager import ConnectionManager
from services.exceptions import AuthenticationRequired
from utils.logger import app_logger


class ChatResync:
    """
    Decides when the inbox has to be refetched over REST: on every tick
    while the realtime channel is degraded, and once more right after it
    comes back, to pick up pushes sent while it was down.
    """

    def __init__(self, inbox: ChatInbox, channel: ConnectionManager):
        self._inbox = inbox
        self._channel = channel
        self._catch_up_pending = False

    async def run_once(self) -> bool:
        """Returns True when a refetch was made."""
        if self._channel.degraded:
            self._catch_up_pending = True
            await self._inbox.refresh()
            app_logger.debug("Realtime channel degraded, chat sessions refetched.")
            return True
        if self._catch_up_pending:
            self._catch_up_pending = False
            await self._inbox.refresh()
            app_logger.info("Realtime channel is back, chat sessions caught up.")
            return True
        return False


async def chat_resync_worker(resync: ChatResync, interval: float = settings.CHAT_RESYNC_INTERVAL_SECONDS):
    app_logger.info("Chat Resync Worker started.")
    while True:
        try:
            await resync.run_once()
        except AuthenticationRequired:
            app_logger.warning("Chat Resync Worker stopped: session ended.")
            return
        except Exception as e:
            app_logger.exception(f"Error in Chat Resync Worker: {e}")

        await asyncio.sleep(interval)
