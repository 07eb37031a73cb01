"""Marketplace data-change notifications."""

import pytest

from plantchat.core.enums import IdentityType
from plantchat.domain import Identity
from plantchat.realtime.publisher import SyncPublisher


@pytest.fixture
def connected(registry, transport):
    transport.connect(registry, Identity.consumer("c1"), "consumer-conn")
    transport.connect(registry, Identity.owner("o1"), "owner-conn")
    transport.connect(registry, Identity.owner("o2"), "other-owner-conn")
    transport.connect(registry, Identity.admin("a1"), "admin-conn")
    return transport


@pytest.fixture
def publisher(router):
    return SyncPublisher(router)


@pytest.mark.asyncio
async def test_plant_changes_reach_everyone(connected, publisher):
    await publisher.notify_plant_created({"id": "p1", "name": "Pothos"})
    await publisher.notify_plant_updated({"id": "p1", "name": "Golden Pothos"})
    await publisher.notify_plant_deleted("p1")

    for connection_id in ("consumer-conn", "owner-conn", "other-owner-conn", "admin-conn"):
        assert connected.events_for(connection_id) == ["plant:created", "plant:updated", "plant:deleted"]
    assert connected.frames_named("admin-conn", "plant:deleted") == [{"id": "p1"}]


@pytest.mark.asyncio
async def test_verification_created_reaches_admins_and_the_owner(connected, publisher):
    await publisher.notify_verification_created({"id": "v1", "ownerId": "o1", "plantId": "p1"})

    assert connected.events_for("admin-conn") == ["verification:created"]
    assert connected.events_for("owner-conn") == ["verification:created"]
    assert connected.events_for("other-owner-conn") == []
    assert connected.events_for("consumer-conn") == []


@pytest.mark.asyncio
async def test_approved_verification_announces_plant_to_consumers(connected, publisher):
    await publisher.notify_verification_updated(
        {"id": "v1", "ownerId": "o1", "plantId": "p1", "status": "APPROVED"}
    )

    assert connected.events_for("owner-conn") == ["verification:updated"]
    assert connected.events_for("admin-conn") == ["verification:updated"]
    assert connected.frames_named("consumer-conn", "plant:verified") == [{"plantId": "p1"}]


@pytest.mark.asyncio
async def test_rejected_verification_is_not_announced_to_consumers(connected, publisher):
    await publisher.notify_verification_updated(
        {"id": "v1", "ownerId": "o1", "plantId": "p1", "status": "REJECTED"}
    )

    assert connected.events_for("consumer-conn") == []


@pytest.mark.asyncio
async def test_refresh_targets_one_role(connected, publisher):
    await publisher.notify_refresh(IdentityType.OWNER, "plants")

    assert connected.frames_named("owner-conn", "data:refresh") == [{"type": "plants"}]
    assert connected.frames_named("other-owner-conn", "data:refresh") == [{"type": "plants"}]
    assert connected.events_for("consumer-conn") == []
    assert connected.events_for("admin-conn") == []
