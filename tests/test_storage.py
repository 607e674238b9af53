"""Tests for the local key/value store and failed-event log."""

import uuid
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from tracking_sdk.models.schemas import Event, InstallData
from tracking_sdk.storage import StorageManager


def _event(n: int) -> Event:
    return Event(
        event_type=f"evt_{n}",
        project_id="proj-1",
        project_token="tok-1",
        device_id="dev-1",
        session_id="sess-1",
        extra={"n": str(n)},
    )


class TestDeviceId:
    def test_generated_once(self, storage):
        first = storage.get_device_id()
        assert uuid.UUID(first)
        assert storage.get_device_id() == first
        assert storage.get_device_id() == first

    def test_concurrent_first_access_agrees(self, storage):
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = set(pool.map(lambda _: storage.get_device_id(), range(32)))
        assert len(ids) == 1


class TestFirstInstall:
    def test_fresh_install(self, storage):
        assert storage.is_first_install() is True
        assert storage.debug_first_install_state() == {"key_exists": False, "value": False}

    def test_marked_complete_once(self, storage):
        storage.set_first_install_complete()
        assert storage.is_first_install() is False
        storage.set_first_install_complete()
        assert storage.is_first_install() is False

    def test_reset(self, storage):
        storage.set_first_install_complete()
        storage.reset_first_install()
        assert storage.is_first_install() is True
        assert storage.debug_first_install_state() == {"key_exists": True, "value": False}


class TestInstallReferrer:
    def test_absent_by_default(self, storage):
        assert storage.get_install_referrer() is None

    def test_store_and_overwrite(self, storage):
        storage.store_install_referrer("https://tryinhouse.com/a")
        assert storage.get_install_referrer() == "https://tryinhouse.com/a"
        storage.store_install_referrer("idfa=XYZ")
        assert storage.get_install_referrer() == "idfa=XYZ"


class TestInstallData:
    def test_absent_by_default(self, storage):
        assert storage.get_install_data() is None

    def test_stored_and_read_back(self, storage):
        data = InstallData(short_link="https://tryinhouse.com/a", key_value_pairs={"campaign": "spring"})
        storage.store_install_data(data)
        loaded = storage.get_install_data()
        assert loaded == data

    def test_corrupt_payload_reads_as_absent(self, storage):
        storage._set("tracking_sdk_install_data", "{not json")
        assert storage.get_install_data() is None


class TestFailedEvents:
    def test_empty(self, storage):
        assert storage.get_failed_events() == []

    def test_events_kept_in_order(self, storage):
        for n in range(3):
            storage.store_failed_event(_event(n))
        assert [e.event_type for e in storage.get_failed_events()] == ["evt_0", "evt_1", "evt_2"]

    def test_event_survives_round_trip(self, storage):
        event = _event(7)
        storage.store_failed_event(event)
        assert storage.get_failed_events() == [event]

    def test_capacity_evicts_oldest(self, storage):
        for n in range(101):
            storage.store_failed_event(_event(n))
        events = storage.get_failed_events()
        assert len(events) == 100
        assert events[0].event_type == "evt_1"
        assert events[-1].event_type == "evt_100"
        assert [e.event_type for e in events] == [f"evt_{n}" for n in range(1, 101)]

    def test_custom_capacity(self):
        store = StorageManager(database_url="sqlite://", failed_event_capacity=3)
        for n in range(5):
            store.store_failed_event(_event(n))
        assert [e.event_type for e in store.get_failed_events()] == ["evt_2", "evt_3", "evt_4"]

    def test_clear(self, storage):
        storage.store_failed_event(_event(1))
        storage.clear_failed_events()
        assert storage.get_failed_events() == []


class TestIsolation:
    def test_separate_in_memory_stores_do_not_share_state(self):
        a = StorageManager(database_url="sqlite://")
        b = StorageManager(database_url="sqlite://")
        a.store_install_referrer("ref-a")
        assert b.get_install_referrer() is None


class TestStorageFailures:
    def test_device_id_stable_when_write_fails(self, storage):
        with patch.object(storage, "_set", return_value=False):
            first = storage.get_device_id()
            assert storage.get_device_id() == first
        assert storage.get_device_id() == first
