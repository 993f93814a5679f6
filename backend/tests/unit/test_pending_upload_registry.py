import pytest

from dropcode.core.errors import NotFound, UploadMismatch
from dropcode.models import UploadPolicy, UploadRequest
from dropcode.repositories import PendingUploadRegistry


def _request(key="uploads/2026/01/01/abc.bin") -> UploadRequest:
    return UploadRequest(
        storage_key=key,
        original_name="abc.bin",
        size=10,
        mime_type="application/octet-stream",
        policy=UploadPolicy(expires_in_hours=24),
    )


def _registry(blob_store, clock) -> PendingUploadRegistry:
    return PendingUploadRegistry(blob_store, ttl_seconds=900, presign_expires_seconds=600, clock=clock)


@pytest.mark.asyncio
async def test_reserve_returns_presigned_target(blob_store, clock):
    registry = _registry(blob_store, clock)

    reservation = await registry.reserve(_request())

    assert reservation.storage_key == "uploads/2026/01/01/abc.bin"
    assert reservation.upload_url.startswith("https://blob.test/uploads/2026/01/01/abc.bin")
    assert reservation.upload_headers == {"Content-Type": "application/octet-stream"}
    assert reservation.expires_in == 600
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_consume_succeeds_exactly_once(blob_store, clock):
    registry = _registry(blob_store, clock)
    reservation = await registry.reserve(_request())

    pending = registry.consume(reservation.upload_id)
    assert pending.original_name == "abc.bin"

    with pytest.raises(NotFound):
        registry.consume(reservation.upload_id)


@pytest.mark.asyncio
async def test_consume_with_wrong_key_keeps_reservation(blob_store, clock):
    registry = _registry(blob_store, clock)
    reservation = await registry.reserve(_request())

    with pytest.raises(UploadMismatch):
        registry.consume(reservation.upload_id, "uploads/other.bin")

    pending = registry.consume(reservation.upload_id, reservation.storage_key)
    assert pending.storage_key == reservation.storage_key


@pytest.mark.asyncio
async def test_stale_reservation_is_rejected_and_swept(blob_store, clock):
    registry = _registry(blob_store, clock)
    reservation = await registry.reserve(_request())
    blob_store.client_put(reservation.storage_key, b"0123456789")
    clock.advance(seconds=901)

    with pytest.raises(NotFound):
        registry.consume(reservation.upload_id)

    assert await registry.sweep_expired() == 1
    assert len(registry) == 0
    assert reservation.storage_key not in blob_store.objects


@pytest.mark.asyncio
async def test_sweep_keeps_fresh_reservations(blob_store, clock):
    registry = _registry(blob_store, clock)
    await registry.reserve(_request())
    clock.advance(seconds=60)

    assert await registry.sweep_expired() == 0
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_abort_discards_reservation_and_blob(blob_store, clock):
    registry = _registry(blob_store, clock)
    reservation = await registry.reserve(_request())
    blob_store.client_put(reservation.storage_key, b"partial")

    await registry.abort(reservation.upload_id)
    await registry.abort(reservation.upload_id)

    assert len(registry) == 0
    assert blob_store.deleted == [reservation.storage_key]
    with pytest.raises(NotFound):
        registry.consume(reservation.upload_id)


@pytest.mark.asyncio
async def test_restore_makes_reservation_consumable_again(blob_store, clock):
    registry = _registry(blob_store, clock)
    reservation = await registry.reserve(_request())

    pending = registry.consume(reservation.upload_id)
    registry.restore(pending)

    assert registry.consume(reservation.upload_id) == pending
