import asyncio
from typing import Dict, List, Optional

from config.settings import settings
from config.constants import EVENT_RENTAL_NOTIFICATION
from models.rental import Rental
from realtime.connection_manager import ConnectionManager
from services.exceptions import AuthenticationRequired, NotFoundError, RentalClientError
from services.rental_service import RentalService
from services.rental_workflow import history_problems
from utils.logger import app_logger


class RentalTracker:
    """
    Keeps a set of rentals in step with the server.

    Tracked rentals are refetched on an interval and whenever a rental
    notification is pushed. Finished rentals stop being polled, except a
    paid rental that was cancelled, which is polled until its refund lands.
    """

    def __init__(self, rental_service: RentalService):
        self._rentals = rental_service
        self._tracked: Dict[int, Rental] = {}

    @property
    def rentals(self) -> List[Rental]:
        return list(self._tracked.values())

    def get(self, rental_id: int) -> Optional[Rental]:
        return self._tracked.get(rental_id)

    def track(self, rental: Rental) -> None:
        self._tracked[rental.id] = rental

    def untrack(self, rental_id: int) -> None:
        self._tracked.pop(rental_id, None)

    def attach(self, channel: ConnectionManager) -> None:
        channel.on(EVENT_RENTAL_NOTIFICATION, self.handle_rental_notification)

    async def refresh_one(self, rental_id: int) -> Rental:
        updated = await self._rentals.get(rental_id)
        previous = self._tracked.get(rental_id)
        if previous is not None and previous.status is not updated.status:
            app_logger.info(f"Rental {rental_id} status changed: {previous.status.value} -> {updated.status.value}")
        for problem in history_problems(updated):
            app_logger.warning(f"Rental {rental_id} history: {problem}")
        self._tracked[rental_id] = updated
        return updated

    async def poll_once(self) -> int:
        """Refetches every unfinished tracked rental. Returns how many were refreshed."""
        refreshed = 0
        for rental in list(self._tracked.values()):
            if rental.status.is_terminal and not rental.awaits_refund:
                continue
            try:
                await self.refresh_one(rental.id)
                refreshed += 1
            except AuthenticationRequired:
                raise
            except NotFoundError:
                app_logger.warning(f"Rental {rental.id} no longer exists, untracking it.")
                self.untrack(rental.id)
            except RentalClientError as e:
                app_logger.warning(f"Could not refresh rental {rental.id}: {e}")
        return refreshed

    async def handle_rental_notification(self, data) -> None:
        """
        Rental notifications carry a text message, and only sometimes the
        rental id, so without one every tracked rental is refetched.
        """
        app_logger.info(f"Rental notification received: {data}")
        rental_id = data.get("rentalId") if isinstance(data, dict) else None
        if rental_id is not None:
            await self.refresh_one(int(rental_id))
        else:
            await self.poll_once()


async def rental_status_worker(tracker: RentalTracker, interval: float = settings.RENTAL_POLL_INTERVAL_SECONDS):
    app_logger.info("Rental Status Worker started.")
    while True:
        try:
            refreshed = await tracker.poll_once()
            app_logger.debug(f"Rental Status Worker refreshed {refreshed} rental(s).")
        except AuthenticationRequired:
            app_logger.warning("Rental Status Worker stopped: session ended.")
            return
        except Exception as e:
            app_logger.exception(f"Critical error in Rental Status Worker: {e}")

        await asyncio.sleep(interval)
