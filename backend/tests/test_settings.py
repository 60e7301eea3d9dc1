"""
Tests for fee settings: database fallback, cache use and invalidation.
"""

import json
from decimal import Decimal

import pytest

from academy_booking.core.exceptions import ValidationError
from academy_booking.services import cache_service, settings_service
from academy_booking.services.cache_service import FEE_SETTINGS_KEY

from conftest import FakeRedis


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    client = FakeRedis()

    async def get_redis():
        return client

    monkeypatch.setattr(cache_service, "get_redis", get_redis)
    return client


@pytest.mark.asyncio
async def test_defaults_without_settings_row(db_session):
    fees = await settings_service.get_fee_settings(db_session)
    assert fees.platform_fee == Decimal("0.00")
    assert fees.tax_percentage == Decimal("18.00")
    assert fees.tax_enabled is True
    assert fees.commission_rate == Decimal("10.00")


@pytest.mark.asyncio
async def test_reads_settings_row(db_session, fee_settings):
    fees = await settings_service.get_fee_settings(db_session)
    assert fees.platform_fee == Decimal("152.54")


@pytest.mark.asyncio
async def test_update_persists_and_validates(db_session, fee_settings):
    fees = await settings_service.update_fee_settings(db_session, tax_enabled=False, platform_fee=Decimal("99.5"))
    assert fees.tax_enabled is False
    assert fees.platform_fee == Decimal("99.50")
    assert fees.commission_rate == Decimal("10.00")

    with pytest.raises(ValidationError, match="cannot be negative"):
        await settings_service.update_fee_settings(db_session, platform_fee=Decimal("-1"))
    with pytest.raises(ValidationError, match="cannot exceed 100"):
        await settings_service.update_fee_settings(db_session, commission_rate=Decimal("101"))


@pytest.mark.asyncio
async def test_cache_is_filled_and_served(db_session, fee_settings, fake_redis):
    await settings_service.get_fee_settings(db_session)
    cached = json.loads(fake_redis.store[FEE_SETTINGS_KEY])
    assert cached["platform_fee"] == "152.54"

    # A cached value wins over the row until it is invalidated
    fake_redis.store[FEE_SETTINGS_KEY] = json.dumps({**cached, "platform_fee": "10.00"})
    fees = await settings_service.get_fee_settings(db_session)
    assert fees.platform_fee == Decimal("10.00")


@pytest.mark.asyncio
async def test_update_invalidates_cache(db_session, fee_settings, fake_redis):
    await settings_service.get_fee_settings(db_session)
    assert FEE_SETTINGS_KEY in fake_redis.store

    await settings_service.update_fee_settings(db_session, platform_fee=Decimal("200"))
    assert FEE_SETTINGS_KEY not in fake_redis.store

    fees = await settings_service.get_fee_settings(db_session)
    assert fees.platform_fee == Decimal("200.00")


@pytest.mark.asyncio
async def test_corrupt_cache_falls_back_to_database(db_session, fee_settings, fake_redis):
    fake_redis.store[FEE_SETTINGS_KEY] = json.dumps({"platform_fee": "1"})
    fees = await settings_service.get_fee_settings(db_session)
    assert fees.platform_fee == Decimal("152.54")
