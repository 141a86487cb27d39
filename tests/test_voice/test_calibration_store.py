"""Tests for calibration profile storage."""

from pathlib import Path

import pytest

from live_interpreter.voice.calibration_store import (
    InMemoryCalibrationStore,
    SqliteCalibrationStore,
)
from live_interpreter.voice.exceptions import CalibrationStoreError
from live_interpreter.voice.models import CalibrationProfile


@pytest.mark.unit
class TestSqliteCalibrationStore:
    """Test cases for the SQLite-backed store."""

    @pytest.mark.asyncio
    async def test_initialize_creates_table(self) -> None:
        """Test initialize() creates the calibration_profiles table."""
        store = SqliteCalibrationStore(":memory:")
        await store.initialize()

        async with store._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='calibration_profiles'"
            )
            result = await cursor.fetchone()
            assert result is not None

        await store.close()

    @pytest.mark.asyncio
    async def test_get_unknown_key_returns_none(self) -> None:
        """Test an uncalibrated key has no profile."""
        store = SqliteCalibrationStore(":memory:")

        assert await store.get("nobody") is None

        await store.close()

    @pytest.mark.asyncio
    async def test_set_then_get(self) -> None:
        """Test a stored profile is returned intact."""
        store = SqliteCalibrationStore(":memory:")
        profile = CalibrationProfile.from_measurements(5, 41, sentence_end_wait_ms=650)

        await store.set("alice", profile)
        loaded = await store.get("alice")

        assert loaded == profile
        await store.close()

    @pytest.mark.asyncio
    async def test_set_replaces_existing(self) -> None:
        """Test writing a key again replaces the whole profile."""
        store = SqliteCalibrationStore(":memory:")
        await store.set("alice", CalibrationProfile.from_measurements(5, 41))
        newer = CalibrationProfile.from_measurements(10, 80).with_threshold(50)

        await store.set("alice", newer)

        assert await store.get("alice") == newer
        async with store._get_connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM calibration_profiles")
            assert (await cursor.fetchone())[0] == 1
        await store.close()

    @pytest.mark.asyncio
    async def test_corrupt_profile_raises(self) -> None:
        """Test an unreadable row surfaces as CalibrationStoreError."""
        store = SqliteCalibrationStore(":memory:")
        await store.initialize()
        async with store._get_connection() as conn:
            await conn.execute(
                "INSERT INTO calibration_profiles (profile_key, profile) VALUES (?, ?)",
                ("broken", '{"silence_avg": 1}'),
            )
            await conn.commit()

        with pytest.raises(CalibrationStoreError, match="Corrupt"):
            await store.get("broken")
        await store.close()

    @pytest.mark.asyncio
    async def test_profiles_persist_across_connections(self, tmp_path: Path) -> None:
        """Test a file-backed store survives being reopened."""
        db_path = str(tmp_path / "nested" / "calibration.db")
        profile = CalibrationProfile.from_measurements(3, 47)

        first = SqliteCalibrationStore(db_path)
        await first.set("mic-1", profile)
        await first.close()

        second = SqliteCalibrationStore(db_path)
        assert await second.get("mic-1") == profile
        await second.close()


@pytest.mark.unit
class TestInMemoryCalibrationStore:
    """Test cases for the in-memory store."""

    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        """Test set/get by key."""
        store = InMemoryCalibrationStore()
        profile = CalibrationProfile.from_measurements(5, 41)

        await store.set("k", profile)

        assert await store.get("k") is profile
        assert await store.get("other") is None
        await store.close()
