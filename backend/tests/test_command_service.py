import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.future import select

from gps_tracker.core.errors import ConflictError, NotFoundError, PayloadValidationError
from gps_tracker.models.command import CommandStatus, CommandType, DeviceCommand
from gps_tracker.models.system_log import LogCategory, SystemLog
from gps_tracker.services import command_service


@pytest.mark.asyncio
async def test_second_pending_command_of_same_type_conflicts(db, tracker) -> None:
    first = await command_service.create_command(db, tracker, CommandType.ENABLE_LOST_MODE)

    with pytest.raises(ConflictError) as exc_info:
        await command_service.create_command(db, tracker, CommandType.ENABLE_LOST_MODE)

    assert exc_info.value.command_id == first.id
    assert exc_info.value.can_cancel is True
    assert exc_info.value.to_dict()["reason"] == "command_already_pending"


@pytest.mark.asyncio
async def test_different_types_can_be_pending_together(db, tracker) -> None:
    await command_service.create_command(db, tracker, CommandType.ENABLE_LOST_MODE)
    await command_service.create_command(db, tracker, CommandType.REBOOT)

    pending = await command_service.get_pending_commands(db, tracker.id)
    assert {c.command_type for c in pending} == {CommandType.ENABLE_LOST_MODE, CommandType.REBOOT}


@pytest.mark.asyncio
async def test_new_command_allowed_once_previous_is_terminal(db, tracker) -> None:
    first = await command_service.create_command(db, tracker, CommandType.REBOOT)
    await command_service.update_command_status(db, first.id, CommandStatus.EXECUTED)

    second = await command_service.create_command(db, tracker, CommandType.REBOOT)
    assert second.id != first.id
    assert second.status == CommandStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_creates_leave_a_single_pending_command(session_factory, tracker) -> None:
    async def create():
        async with session_factory() as session:
            return await command_service.create_command(session, tracker, CommandType.ENABLE_LOST_MODE)

    results = await asyncio.gather(create(), create(), return_exceptions=True)

    created = [r for r in results if isinstance(r, DeviceCommand)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 1
    assert conflicts[0].command_id == created[0].id

    async with session_factory() as session:
        pending = await command_service.get_pending_commands(session, tracker.id)
    assert len(pending) == 1


@pytest.mark.asyncio
async def test_status_transitions_stamp_timestamps(db, tracker) -> None:
    command = await command_service.create_command(db, tracker, CommandType.REBOOT)

    command = await command_service.update_command_status(db, command.id, CommandStatus.SENT)
    assert command.sent_at is not None
    command = await command_service.update_command_status(db, command.id, CommandStatus.ACKNOWLEDGED)
    assert command.acknowledged_at is not None
    command = await command_service.update_command_status(db, command.id, CommandStatus.EXECUTED)
    assert command.executed_at is not None
    assert command.status == CommandStatus.EXECUTED


@pytest.mark.asyncio
async def test_executed_update_config_replaces_device_config(db, tracker) -> None:
    command = await command_service.create_command(
        db, tracker, CommandType.UPDATE_CONFIG, {"heartbeatInterval": 60000, "lowBatteryThreshold": 20}
    )

    await command_service.update_command_status(db, command.id, CommandStatus.EXECUTED)
    await command_service.update_command_status(db, command.id, CommandStatus.EXECUTED)

    await db.refresh(tracker)
    assert tracker.config == {
        "heartbeatInterval": 60000,
        "lostModeInterval": 15000,
        "gpsReadInterval": 0,
        "lowBatteryThreshold": 20.0,
    }

    result = await db.execute(
        select(SystemLog).where(SystemLog.device_id == tracker.id, SystemLog.category == LogCategory.CONFIG)
    )
    assert len(result.scalars().all()) == 2


@pytest.mark.asyncio
async def test_acknowledged_update_config_does_not_touch_config(db, tracker) -> None:
    command = await command_service.create_command(
        db, tracker, CommandType.UPDATE_CONFIG, {"heartbeatInterval": 60000}
    )
    await command_service.update_command_status(db, command.id, CommandStatus.ACKNOWLEDGED)

    await db.refresh(tracker)
    assert tracker.config["heartbeatInterval"] == 30000


@pytest.mark.asyncio
async def test_invalid_config_payload_is_rejected(db, tracker) -> None:
    with pytest.raises(PayloadValidationError):
        await command_service.create_command(
            db, tracker, CommandType.UPDATE_CONFIG, {"heartbeatInterval": 1000}
        )
    with pytest.raises(PayloadValidationError):
        await command_service.create_command(
            db, tracker, CommandType.UPDATE_CONFIG, {"gpsReadInterval": 1000}
        )
    assert await command_service.get_pending_commands(db, tracker.id) == []


@pytest.mark.asyncio
async def test_cancel_is_idempotent(db, tracker) -> None:
    command = await command_service.create_command(db, tracker, CommandType.REBOOT)

    cancelled = await command_service.cancel_command(db, command.id)
    assert cancelled.status == CommandStatus.CANCELLED
    again = await command_service.cancel_command(db, command.id)
    assert again.status == CommandStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_leaves_executed_command_untouched(db, tracker) -> None:
    command = await command_service.create_command(db, tracker, CommandType.REBOOT)
    await command_service.update_command_status(db, command.id, CommandStatus.EXECUTED)

    result = await command_service.cancel_command(db, command.id)
    assert result.status == CommandStatus.EXECUTED


@pytest.mark.asyncio
async def test_unknown_command_is_not_found(db, tracker) -> None:
    with pytest.raises(NotFoundError):
        await command_service.update_command_status(db, 9999, CommandStatus.EXECUTED)
    with pytest.raises(NotFoundError):
        await command_service.cancel_command(db, 9999)


@pytest.mark.asyncio
async def test_lost_mode_toggle_cancels_opposite_pending(db, tracker) -> None:
    enable = await command_service.set_lost_mode(db, tracker, True)
    disable = await command_service.set_lost_mode(db, tracker, False)

    await db.refresh(enable)
    assert enable.status == CommandStatus.CANCELLED
    pending = await command_service.get_pending_commands(db, tracker.id)
    assert [c.id for c in pending] == [disable.id]


def test_reboot_command_carries_delay() -> None:
    reboot = command_service.build_reboot_command(5000)

    assert reboot["id"].startswith("reboot-")
    assert reboot["command_type"] is CommandType.REBOOT
    assert reboot["command_data"] == {"reason": "device_not_registered", "delay": 5000}
    assert reboot["status"] is CommandStatus.PENDING


@pytest.mark.asyncio
async def test_command_is_created_even_if_system_log_insert_fails(engine, db, tracker) -> None:
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE system_logs"))

    command = await command_service.create_command(db, tracker, CommandType.GET_LOCATION)

    assert command.id is not None
    pending = await command_service.get_pending_commands(db, tracker.id)
    assert [c.id for c in pending] == [command.id]
