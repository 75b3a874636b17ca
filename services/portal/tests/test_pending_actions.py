from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from packages.shared.schemas.food import MenuItem
from services.portal.app.models.lost_and_found import LostAndFoundFormData
from services.portal.app.models.pending import (
    CartAddPending,
    LostAndFoundPending,
    PendingKind,
    RepairFormPending,
)
from services.portal.app.models.repair import RepairFormData, RepairServiceType
from services.portal.app.services.pending import PendingActions, resume_pending_action
from services.portal.app.services.storage import (
    PENDING_CART_ACTION_KEY,
    PENDING_LOST_AND_FOUND_KEY,
    PENDING_REPAIR_KEY,
    MemoryStorage,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(hours=24)

FORM = RepairFormData(
    first_name="Ada",
    last_name="Lovelace",
    phone_number="555-123-4567",
    device_model="ThinkPad X1",
    problem_description="Screen flickers when the lid opens",
)


def _repair(context: RepairServiceType = RepairServiceType.LAPTOP, age=timedelta()):
    return RepairFormPending(
        context=context,
        form=FORM,
        redirect_url=f"/repair/{context.value}",
        timestamp=NOW - age,
    )


def _pending(storage: MemoryStorage) -> PendingActions:
    return PendingActions(storage, ttl=DAY, clock=lambda: NOW)


def test_stash_and_resume_matching_context() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)

    pending.stash(_repair())

    stored = json.loads(storage.get(PENDING_REPAIR_KEY))
    assert stored["kind"] == "repair_form"
    assert stored["context"] == "laptop"

    action = pending.resume("laptop")
    assert isinstance(action, RepairFormPending)
    assert action.form == FORM

    # Reading does not consume.
    assert pending.resume("laptop") is not None


def test_mismatched_context_is_discarded() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)
    pending.stash(_repair(RepairServiceType.LAPTOP))

    assert pending.resume("phone") is None
    assert storage.get(PENDING_REPAIR_KEY) is None


def test_expired_payload_is_never_returned_and_is_deleted() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)
    pending.stash(_repair(age=timedelta(hours=25)))

    assert pending.resume("laptop") is None
    assert storage.get(PENDING_REPAIR_KEY) is None


def test_payload_at_exactly_ttl_is_expired() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)
    pending.stash(_repair(age=DAY))

    assert pending.resume("laptop") is None


def test_payload_just_under_ttl_is_kept() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)
    pending.stash(_repair(age=DAY - timedelta(seconds=1)))

    assert pending.resume("laptop") is not None


def test_corrupt_payload_is_deleted() -> None:
    storage = MemoryStorage({PENDING_REPAIR_KEY: "{broken"})
    assert resume_pending_action(storage, "laptop", DAY, NOW) is None
    assert storage.get(PENDING_REPAIR_KEY) is None

    storage.set(PENDING_REPAIR_KEY, json.dumps({"kind": "repair_form", "context": "laptop"}))
    assert resume_pending_action(storage, "laptop", DAY, NOW) is None
    assert storage.get(PENDING_REPAIR_KEY) is None


def test_payload_of_another_kind_in_slot_is_deleted() -> None:
    storage = MemoryStorage()
    item = LostAndFoundPending(
        form=LostAndFoundFormData(item_name="Umbrella", category="lost", place="Library"),
        redirect_url="/lost-and-found",
        timestamp=NOW,
    )
    storage.set(PENDING_REPAIR_KEY, item.model_dump_json())

    assert resume_pending_action(storage, "laptop", DAY, NOW) is None
    assert storage.get(PENDING_REPAIR_KEY) is None


def test_each_family_has_its_own_slot() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)
    latte = MenuItem(id="latte", restaurant_id="rest-starbucks", name="Latte", price_cents=400)

    pending.stash(_repair())
    pending.stash(
        LostAndFoundPending(
            form=LostAndFoundFormData(item_name="Keys", category="found", place="Gym"),
            redirect_url="/lost-and-found",
            timestamp=NOW,
        )
    )
    pending.stash(
        CartAddPending(menu_item=latte, quantity=2, redirect_url="/food/starbucks", timestamp=NOW)
    )

    assert storage.get(PENDING_REPAIR_KEY) is not None
    assert storage.get(PENDING_LOST_AND_FOUND_KEY) is not None
    assert storage.get(PENDING_CART_ACTION_KEY) is not None

    assert pending.resume("food").menu_item == latte
    assert pending.resume("lost-and-found").form.item_name == "Keys"

    pending.discard(PendingKind.CART_ADD)
    assert pending.resume("food") is None
    assert pending.resume("laptop") is not None


def test_unknown_context_touches_nothing() -> None:
    storage = MemoryStorage()
    _pending(storage).stash(_repair())

    assert resume_pending_action(storage, "clubs", DAY, NOW) is None
    assert storage.get(PENDING_REPAIR_KEY) is not None


def test_load_ignores_context_but_not_expiry() -> None:
    storage = MemoryStorage()
    pending = _pending(storage)
    pending.stash(_repair(RepairServiceType.PHONE))

    assert pending.load(PendingKind.REPAIR_FORM).context == RepairServiceType.PHONE

    pending.stash(_repair(RepairServiceType.PHONE, age=timedelta(days=2)))
    assert pending.load(PendingKind.REPAIR_FORM) is None
    assert storage.get(PENDING_REPAIR_KEY) is None


def test_naive_timestamps_are_read_as_utc() -> None:
    storage = MemoryStorage()
    payload = json.loads(_repair().model_dump_json())
    payload["timestamp"] = "2024-05-01T11:00:00"
    storage.set(PENDING_REPAIR_KEY, json.dumps(payload))

    action = resume_pending_action(storage, "laptop", DAY, NOW)
    assert action is not None
    assert action.timestamp.tzinfo is not None


def test_ttl_comes_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORTAL_PENDING_TTL_HOURS", "1")
    storage = MemoryStorage()
    PendingActions(storage, clock=lambda: NOW).stash(_repair(age=timedelta(hours=2)))

    assert resume_pending_action(storage, "laptop", now=NOW) is None


def test_invalid_ttl_setting_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORTAL_PENDING_TTL_HOURS", "soon")
    with pytest.raises(ValueError, match="PORTAL_PENDING_TTL_HOURS"):
        PendingActions(MemoryStorage()).ttl
