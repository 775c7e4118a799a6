"""
Tests for the store retry policy.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.config import settings
from app.core.retry import store_retry
from app.modules.applications import repository


def _connection_dropped() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server closed the connection"))


class TestStoreRetry:
    @pytest.mark.asyncio
    async def test_rolls_back_before_next_attempt(self, mock_db):
        rollbacks_seen = []

        @store_retry
        async def read(db, key):
            rollbacks_seen.append(db.rollback.await_count)
            if len(rollbacks_seen) == 1:
                raise _connection_dropped()
            return key

        assert await read(mock_db, "k") == "k"
        assert rollbacks_seen == [0, 1]

    @pytest.mark.asyncio
    async def test_gives_up_after_configured_attempts(self, mock_db):
        attempts = []

        @store_retry
        async def read(db):
            attempts.append(1)
            raise _connection_dropped()

        with pytest.raises(OperationalError):
            await read(mock_db)

        assert len(attempts) == settings.store_retry_attempts
        assert mock_db.rollback.await_count == settings.store_retry_attempts

    @pytest.mark.asyncio
    async def test_integrity_errors_are_not_retried(self, mock_db):
        attempts = []

        @store_retry
        async def write(db):
            attempts.append(1)
            raise IntegrityError("INSERT", {}, Exception("unique violation"))

        with pytest.raises(IntegrityError):
            await write(mock_db)

        assert len(attempts) == 1
        mock_db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repository_read_recovers_after_dropped_connection(self, mock_db):
        application = MagicMock()
        mock_db.get.side_effect = [_connection_dropped(), application]

        result = await repository.get_by_id(mock_db, uuid4())

        assert result is application
        assert mock_db.get.await_count == 2
        mock_db.rollback.assert_awaited_once()
