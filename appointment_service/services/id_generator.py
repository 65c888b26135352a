"""External appointment id generation."""

import random

import structlog

from appointment_service.core.exceptions import ConflictException
from appointment_service.repositories.base import AppointmentStore

logger = structlog.get_logger(__name__)


class AppointmentIdGenerator:
    """
    Rejection-sample ``<prefix><zero-padded number>`` ids until one is free.

    Expected retries grow as the space fills up; the attempt budget turns an
    exhausted space into an error instead of an endless loop.
    """

    MIN_WIDTH = 4
    ATTEMPTS_PER_SLOT = 20

    def __init__(
        self,
        repository: AppointmentStore,
        prefix: str = "APP-",
        space: int = 10_000,
        rng: random.Random | None = None,
        max_attempts: int | None = None,
    ):
        if space < 1:
            raise ValueError("Id space must contain at least one value")
        self.repository = repository
        self.prefix = prefix
        self.space = space
        self.width = max(self.MIN_WIDTH, len(str(space - 1)))
        self.rng = rng or random.SystemRandom()
        self.max_attempts = max_attempts or space * self.ATTEMPTS_PER_SLOT

    def format_id(self, number: int) -> str:
        return f"{self.prefix}{number:0{self.width}d}"

    async def generate(self) -> str:
        """
        Return an id not present in the store.

        Raises:
            ConflictException: If no free id was found within the attempt budget
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.format_id(self.rng.randrange(self.space))
            if not await self.repository.exists_by_appointment_id(candidate):
                if attempt > 1:
                    logger.debug("appointment_id_collisions", attempts=attempt)
                return candidate

        logger.error("appointment_id_space_exhausted", space=self.space, prefix=self.prefix)
        raise ConflictException("Appointment id space exhausted")
