import asyncio

import pytest

from storefront.models.checkout import Address
from storefront.services.address_validator import (
    DebouncedAddressValidator,
    invalid_fields,
    is_complete,
    validate,
)


def test_valid_address_enables_submission(address):
    assert validate(address) == {
        "street": True,
        "city": True,
        "state": True,
        "country": True,
        "zip_code": True,
    }
    assert is_complete(address)


def test_short_zip_code_only_invalidates_zip(address):
    edited = address.with_changes(zip_code="4110")

    validity = validate(edited)

    assert validity["zip_code"] is False
    assert all(ok for name, ok in validity.items() if name != "zip_code")
    assert not is_complete(edited)


@pytest.mark.parametrize("zip_code", ["411001", " 41100 ", "560034"])
def test_zip_code_accepts_five_or_six_digits(address, zip_code):
    assert validate(address.with_changes(zip_code=zip_code))["zip_code"]


@pytest.mark.parametrize("zip_code", ["", "4110011", "41A00", "411-00"])
def test_zip_code_rejects_other_shapes(address, zip_code):
    assert not validate(address.with_changes(zip_code=zip_code))["zip_code"]


def test_minimum_lengths_ignore_surrounding_whitespace():
    address = Address(street="  12 O  ", city=" P ", state="M", zip_code="41100", country="I")
    assert invalid_fields(address) == ["street", "city", "state", "country"]


def test_empty_address_is_incomplete():
    assert not is_complete(Address())


def test_unknown_field_is_rejected(address):
    with pytest.raises(ValueError):
        address.with_changes(zipcode="41100")


@pytest.mark.asyncio
async def test_rapid_edits_validate_once_with_last_value(address):
    results = []
    validator = DebouncedAddressValidator(on_result=results.append, delay=0.02)

    validator.schedule(address.with_changes(zip_code="4"))
    validator.schedule(address.with_changes(zip_code="41"))
    validator.schedule(address.with_changes(zip_code="41100"))
    assert validator.pending

    await asyncio.sleep(0.06)

    assert results == [validate(address)]
    assert validator.latest == validate(address)
    assert not validator.pending


@pytest.mark.asyncio
async def test_each_edit_restarts_quiet_period(address):
    results = []
    validator = DebouncedAddressValidator(on_result=results.append, delay=0.1)

    validator.schedule(address)
    await asyncio.sleep(0.06)
    validator.schedule(address.with_changes(zip_code="4110"))
    await asyncio.sleep(0.06)
    assert results == []

    await asyncio.sleep(0.1)
    assert len(results) == 1
    assert results[0]["zip_code"] is False


@pytest.mark.asyncio
async def test_cancel_prevents_validation_after_teardown(address):
    results = []
    validator = DebouncedAddressValidator(on_result=results.append, delay=0.02)

    validator.schedule(address)
    validator.cancel()
    await asyncio.sleep(0.05)

    assert results == []
    assert validator.latest is None
    assert not validator.pending


@pytest.mark.asyncio
async def test_flush_runs_pending_validation_now(address):
    results = []
    validator = DebouncedAddressValidator(on_result=results.append, delay=10)

    validator.schedule(address.with_changes(city="P"))
    flushed = validator.flush()

    assert flushed["city"] is False
    assert results == [flushed]
    assert not validator.pending
    assert validator.flush() is None
