import asyncio
import sys
from dataclasses import dataclass, field
from typing import List, Optional

import redis.asyncio as redis

from config.settings import settings
from database.redis import redis_client
from database.token_store import TokenStore
from realtime.chat_inbox import ChatInbox
from realtime.connection_manager import ConnectionManager
from services.api_client import ApiClient
from services.availability_service import AvailabilityService
from services.chat_service import ChatService
from services.contract_service import ContractService
from services.exceptions import AuthenticationRequired, RentalClientError
from services.rental_service import RentalService
from services.session_manager import SessionManager
from services.user_service import UserService
from utils.liveness import ActionGate
from utils.logger import app_logger
from utils.messages import describe_error
from workers.chat_sync_worker import ChatResync, chat_resync_worker
from workers.rental_worker import RentalTracker, rental_status_worker


@dataclass
class AppContext:
    """Every long-lived collaborator of the client, built once."""
    sessions: SessionManager
    api: ApiClient
    users: UserService
    availability: AvailabilityService
    rentals: RentalService
    contracts: ContractService
    chat: ChatService
    channel: ConnectionManager
    tracker: RentalTracker
    stopped: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: List[asyncio.Task] = field(default_factory=list)


def build_app(client: Optional[redis.Redis] = None, channel: Optional[ConnectionManager] = None) -> AppContext:
    sessions = SessionManager(TokenStore(client or redis_client))
    api = ApiClient(sessions)
    gate = ActionGate()
    availability = AvailabilityService(api)
    rentals = RentalService(api, availability, gate)
    context = AppContext(
        sessions=sessions,
        api=api,
        users=UserService(api),
        availability=availability,
        rentals=rentals,
        contracts=ContractService(api, gate),
        chat=ChatService(api),
        channel=channel or ConnectionManager(token_provider=sessions.access_token),
        tracker=RentalTracker(rentals),
    )

    async def on_session_expired(reason: str):
        app_logger.warning(f"Sign-in required ({reason}). Closing realtime channel.")
        await context.channel.disconnect()
        context.stopped.set()

    sessions.on_reauthentication_required(on_session_expired)
    return context


async def start(context: AppContext) -> ChatInbox:
    """Signs in if needed, opens the realtime channel and starts the workers."""
    if not await context.sessions.is_authenticated():
        if not settings.ACCOUNT_EMAIL or not settings.ACCOUNT_PASSWORD:
            raise AuthenticationRequired("No stored session and no ACCOUNT_EMAIL / ACCOUNT_PASSWORD configured.")
        await context.sessions.login(settings.ACCOUNT_EMAIL, settings.ACCOUNT_PASSWORD)

    me = await context.users.get_me()
    app_logger.info(f"Signed in as {me.display_name} (id {me.id})")

    inbox = ChatInbox(context.chat, context.channel, me.id)
    inbox.attach()
    context.tracker.attach(context.channel)
    await context.channel.connect(me.id, await context.sessions.access_token())

    await inbox.refresh()
    for rental in await context.rentals.list_for_renter():
        context.tracker.track(rental)
    for rental in await context.rentals.owner_pending():
        context.tracker.track(rental)
    app_logger.info(f"{len(inbox.sessions)} chat session(s), {len(context.tracker.rentals)} rental(s) tracked.")

    context.tasks.append(asyncio.create_task(chat_resync_worker(ChatResync(inbox, context.channel))))
    context.tasks.append(asyncio.create_task(rental_status_worker(context.tracker)))
    return inbox


async def shutdown(context: AppContext) -> None:
    app_logger.warning("Shutdown sequence initiated...")
    for task in context.tasks:
        task.cancel()
    await asyncio.gather(*context.tasks, return_exceptions=True)
    context.tasks.clear()
    await context.channel.disconnect()
    app_logger.info("Shutdown complete.")


async def main():
    app_logger.info("Application starting up...")
    context = build_app()
    try:
        await start(context)
    except RentalClientError as e:
        app_logger.critical(f"Initialization failed: {describe_error(e)}")
        await shutdown(context)
        await redis_client.aclose()
        sys.exit(1)

    try:
        await context.stopped.wait()
    finally:
        await shutdown(context)
        await redis_client.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        app_logger.warning("Application was stopped manually.")
