"""Key-value persistence of calibration profiles, keyed per user or device."""

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from .config import DEFAULT_CALIBRATION_DB_PATH
from .exceptions import CalibrationStoreError
from .logging_utils import get_logger
from .models import CalibrationProfile

logger = get_logger(__name__)


class CalibrationStore(ABC):
    """Get/set of a whole CalibrationProfile blob."""

    @abstractmethod
    async def get(self, key: str) -> CalibrationProfile | None:
        """
        Load the profile stored under ``key``.

        Returns:
            The profile, or None if the key has never been calibrated
        """
        pass

    @abstractmethod
    async def set(self, key: str, profile: CalibrationProfile) -> None:
        """Replace the profile stored under ``key``."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class InMemoryCalibrationStore(CalibrationStore):
    """Process-local store, used in tests and by hosts with their own persistence."""

    def __init__(self) -> None:
        self._profiles: dict[str, CalibrationProfile] = {}

    async def get(self, key: str) -> CalibrationProfile | None:
        return self._profiles.get(key)

    async def set(self, key: str, profile: CalibrationProfile) -> None:
        self._profiles[key] = profile


class SqliteCalibrationStore(CalibrationStore):
    """SQLite-backed store holding one JSON blob per key."""

    def __init__(self, db_path: str = DEFAULT_CALIBRATION_DB_PATH) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file (use ":memory:" for in-memory)
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection and create the table if needed."""
        if self._connection is not None:
            return

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS calibration_profiles (
                    profile_key TEXT PRIMARY KEY,
                    profile TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            await self._connection.commit()
        except (aiosqlite.Error, OSError) as e:
            raise CalibrationStoreError(f"Failed to open calibration store: {e}") from e

        logger.debug(f"💾 Calibration store ready at {self.db_path}")

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._connection is None:
            await self.initialize()
        try:
            yield self._connection
        except aiosqlite.Error as e:
            raise CalibrationStoreError(f"Calibration store operation failed: {e}") from e

    async def get(self, key: str) -> CalibrationProfile | None:
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT profile FROM calibration_profiles WHERE profile_key = ?", (key,)
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        try:
            return CalibrationProfile.from_dict(json.loads(row[0]))
        except (KeyError, ValueError, TypeError) as e:
            raise CalibrationStoreError(f"Corrupt calibration profile for '{key}': {e}") from e

    async def set(self, key: str, profile: CalibrationProfile) -> None:
        blob = json.dumps(profile.to_dict())
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO calibration_profiles (profile_key, profile, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(profile_key) DO UPDATE SET
                    profile = excluded.profile,
                    updated_at = excluded.updated_at
                """,
                (key, blob),
            )
            await conn.commit()
        logger.debug(f"💾 Stored calibration profile for '{key}'")

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
