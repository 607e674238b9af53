"""
Durable key/value store for SDK state.

One row per logical key in kv_entries, plus the failed_events log:
  - device id         → generated once per install, never changes
  - first install     → "true" once the first launch has been handled
  - install referrer  → first attribution source resolved for this install
  - install data      → InstallData JSON cached from the install-data endpoint
  - failed events     → bounded FIFO of Event JSON (oldest evicted first)

Every public method holds one re-entrant lock, so the first-install path and
event-tracking callbacks completing on other threads cannot lose updates.
Storage errors are logged and read back as "absent"; nothing here raises.
"""

import threading
import uuid

import structlog
from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tracking_sdk.config import get_settings
from tracking_sdk.models.database import build_engine, get_session_maker
from tracking_sdk.models.schemas import Event, InstallData
from tracking_sdk.models.tables import FailedEvent, KeyValueEntry

logger = structlog.get_logger()

KEY_DEVICE_ID = "tracking_sdk_device_id"
KEY_FIRST_INSTALL = "tracking_sdk_first_install"
KEY_INSTALL_DATA = "tracking_sdk_install_data"
KEY_INSTALL_REFERRER = "tracking_sdk_install_referrer"


class StorageManager:
    def __init__(
        self,
        database_url: str | None = None,
        engine: Engine | None = None,
        failed_event_capacity: int | None = None,
    ):
        settings = get_settings()
        if engine is None and database_url is not None:
            engine = build_engine(database_url)
        self._sessions = get_session_maker(engine)
        self._capacity = failed_event_capacity or settings.failed_event_capacity
        self._lock = threading.RLock()
        self._device_id: str | None = None

    # --- Raw key/value access ---

    def _get(self, key: str) -> str | None:
        try:
            with self._sessions() as session:
                row = session.get(KeyValueEntry, key)
                return row.value if row else None
        except SQLAlchemyError as e:
            logger.error("storage_read_failed", key=key, error=str(e))
            return None

    def _set(self, key: str, value: str) -> bool:
        try:
            with self._sessions() as session:
                row = session.get(KeyValueEntry, key)
                if row is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    row.value = value
                session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("storage_write_failed", key=key, error=str(e))
            return False

    # --- Device ID ---

    def get_device_id(self) -> str:
        """Return the install's device id, generating it on first use."""
        with self._lock:
            if self._device_id:
                return self._device_id
            device_id = self._get(KEY_DEVICE_ID)
            if not device_id:
                device_id = str(uuid.uuid4())
                logger.info("device_id_generated", device_id=device_id)
                if not self._set(KEY_DEVICE_ID, device_id):
                    # Kept for this process even though it could not be persisted
                    logger.warning("device_id_not_persisted", device_id=device_id)
            self._device_id = device_id
            return device_id

    # --- First install ---

    def is_first_install(self) -> bool:
        with self._lock:
            value = self._get(KEY_FIRST_INSTALL)
        is_first = value != "true"
        logger.debug("is_first_install", has_key=value is not None, result=is_first)
        return is_first

    def set_first_install_complete(self) -> None:
        with self._lock:
            self._set(KEY_FIRST_INSTALL, "true")
        logger.debug("first_install_complete")

    def reset_first_install(self) -> None:
        with self._lock:
            self._set(KEY_FIRST_INSTALL, "false")
        logger.debug("first_install_reset")

    def debug_first_install_state(self) -> dict:
        with self._lock:
            value = self._get(KEY_FIRST_INSTALL)
        state = {"key_exists": value is not None, "value": value == "true"}
        logger.debug("first_install_state", **state)
        return state

    # --- Install data ---

    def store_install_data(self, install_data: InstallData) -> None:
        with self._lock:
            self._set(KEY_INSTALL_DATA, install_data.model_dump_json())

    def get_install_data(self) -> InstallData | None:
        with self._lock:
            raw = self._get(KEY_INSTALL_DATA)
        if raw is None:
            return None
        try:
            return InstallData.model_validate_json(raw)
        except ValidationError as e:
            logger.error("install_data_decode_failed", error=str(e))
            return None

    # --- Install referrer ---

    def store_install_referrer(self, referrer: str) -> None:
        with self._lock:
            self._set(KEY_INSTALL_REFERRER, referrer)

    def get_install_referrer(self) -> str | None:
        with self._lock:
            return self._get(KEY_INSTALL_REFERRER)

    # --- Failed events ---

    def store_failed_event(self, event: Event) -> None:
        """Append to the failed-event log, evicting the oldest past capacity."""
        with self._lock:
            try:
                with self._sessions() as session:
                    session.add(FailedEvent(
                        event_type=event.event_type,
                        payload=event.model_dump_json(by_alias=True),
                    ))
                    session.flush()

                    count = session.scalar(select(func.count()).select_from(FailedEvent))
                    if count > self._capacity:
                        oldest = select(FailedEvent.id).order_by(FailedEvent.id).limit(count - self._capacity)
                        session.execute(
                            delete(FailedEvent).where(FailedEvent.id.in_(oldest)),
                            execution_options={"synchronize_session": False},
                        )
                    session.commit()
            except SQLAlchemyError as e:
                logger.error("failed_event_store_failed", event_type=event.event_type, error=str(e))
                return
        logger.info("failed_event_stored", event_type=event.event_type)

    def get_failed_events(self) -> list[Event]:
        with self._lock:
            try:
                with self._sessions() as session:
                    payloads = session.scalars(select(FailedEvent.payload).order_by(FailedEvent.id)).all()
            except SQLAlchemyError as e:
                logger.error("failed_events_read_failed", error=str(e))
                return []

        events = []
        for payload in payloads:
            try:
                events.append(Event.model_validate_json(payload))
            except ValidationError as e:
                logger.error("failed_event_decode_failed", error=str(e))
        return events

    def clear_failed_events(self) -> None:
        with self._lock:
            try:
                with self._sessions() as session:
                    session.execute(delete(FailedEvent))
                    session.commit()
            except SQLAlchemyError as e:
                logger.error("failed_events_clear_failed", error=str(e))
