import pytest


async def _register(client, device_id="AA:BB", **extra):
    return await client.post("/api/device/register", json={"deviceId": device_id, **extra})


@pytest.mark.asyncio
async def test_ping_and_health(client) -> None:
    r = await client.get("/api/ping")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_register_assigns_default_config(client) -> None:
    r = await _register(client, deviceName="Bici")

    assert r.status_code == 201
    body = r.json()
    assert body["deviceId"] == "AA:BB"
    assert body["status"] == "online"
    assert body["config"] == {
        "heartbeatInterval": 30000,
        "lostModeInterval": 15000,
        "gpsReadInterval": 0,
        "lowBatteryThreshold": 15.0,
    }


@pytest.mark.asyncio
async def test_re_register_keeps_device_and_returns_200(client) -> None:
    first = await _register(client, firmwareVersion="1.0.0")
    second = await _register(client, firmwareVersion="1.1.0")

    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["firmwareVersion"] == "1.1.0"

    r = await client.get("/api/devices")
    assert len(r.json()) == 1


@pytest.mark.asyncio
async def test_device_exists(client) -> None:
    assert (await client.get("/api/device/AA:BB/exists")).json() == {"exists": False}
    await _register(client)
    assert (await client.get("/api/device/AA:BB/exists")).json() == {"exists": True}


@pytest.mark.asyncio
async def test_unknown_device_location_gets_reboot_instruction(client) -> None:
    r = await client.post("/api/device/ZZ:ZZ/location", json={"latitude": 45.0, "longitude": 9.0})

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["action"] == "reboot"
    assert body["reason"] == "device_not_registered"
    [command] = body["commands"]
    assert command["id"].startswith("reboot-")
    assert command["commandType"] == "reboot"
    assert command["commandData"]["delay"] == 10000


@pytest.mark.asyncio
async def test_unknown_device_heartbeat_gets_reboot_instruction(client) -> None:
    r = await client.post("/api/device/ZZ:ZZ/heartbeat", json={"status": "online"})

    assert r.status_code == 200
    assert r.json()["commands"][0]["commandData"]["delay"] == 5000


@pytest.mark.asyncio
async def test_heartbeat_returns_config_and_pending_commands(client) -> None:
    await _register(client)
    r = await client.post("/api/devices/AA:BB/commands", json={"commandType": "reboot"})
    assert r.status_code == 201
    command_id = r.json()["id"]

    r = await client.post(
        "/api/device/AA:BB/heartbeat",
        json={"status": "online", "batteryLevel": 80.5, "network": {"signalQuality": 21, "operator": "TIM"}},
    )

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["config"]["heartbeatInterval"] == 30000
    assert [c["id"] for c in body["commands"]] == [command_id]

    history = (await client.get("/api/devices/AA:BB/status-history")).json()
    assert history[0]["batteryLevel"] == 80.5
    assert history[0]["netSignalQuality"] == "21"


@pytest.mark.asyncio
async def test_ack_updates_command_status(client) -> None:
    await _register(client)
    command_id = (await client.post("/api/devices/AA:BB/commands", json={"commandType": "reboot"})).json()["id"]

    r = await client.post(f"/api/device/AA:BB/commands/{command_id}/ack", json={"status": "executed"})

    assert r.status_code == 200
    assert r.json()["status"] == "executed"
    assert (await client.get("/api/devices/AA:BB/commands")).json() == []


@pytest.mark.asyncio
async def test_ack_rejects_non_device_status(client) -> None:
    await _register(client)
    command_id = (await client.post("/api/devices/AA:BB/commands", json={"commandType": "reboot"})).json()["id"]

    r = await client.post(f"/api/device/AA:BB/commands/{command_id}/ack", json={"status": "cancelled"})

    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request data"


@pytest.mark.asyncio
async def test_location_report_stores_position_and_raises_alert(client) -> None:
    await _register(client)
    await client.post(
        "/api/devices/AA:BB/geofences",
        json={"name": "Casa", "centerLatitude": 45.4642, "centerLongitude": 9.19, "radius": 100},
    )

    r = await client.post("/api/device/AA:BB/location", json={"latitude": 45.4642, "longitude": 9.19, "satellites": 8})

    assert r.status_code == 201
    assert r.json()["satellites"] == 8
    assert (await client.get("/api/devices/AA:BB/unread-alerts-count")).json() == {"count": 1}
    alerts = (await client.get("/api/devices/AA:BB/geofence-alerts")).json()
    assert alerts[0]["alertType"] == "enter"

    history = (await client.get("/api/devices/AA:BB/history")).json()
    assert len(history) == 1


@pytest.mark.asyncio
async def test_location_out_of_range_is_rejected(client) -> None:
    await _register(client)
    r = await client.post("/api/device/AA:BB/location", json={"latitude": 95.0, "longitude": 9.19})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_lost_mode_twice_returns_conflict(client) -> None:
    await _register(client)

    first = await client.post("/api/devices/AA:BB/lost-mode", json={"lostMode": True})
    second = await client.post("/api/devices/AA:BB/lost-mode", json={"lostMode": True})

    assert first.status_code == 200
    assert second.status_code == 409
    body = second.json()
    assert body["canCancel"] is True
    assert body["commandId"] == first.json()["commandId"]

    r = await client.delete(f"/api/devices/AA:BB/commands/{body['commandId']}")
    assert r.json()["status"] == "cancelled"
    third = await client.post("/api/devices/AA:BB/lost-mode", json={"lostMode": True})
    assert third.status_code == 200


@pytest.mark.asyncio
async def test_device_status_summary(client) -> None:
    await _register(client)
    await client.post("/api/devices/AA:BB/lost-mode", json={"lostMode": True})

    body = (await client.get("/api/devices/AA:BB/status")).json()

    assert body["device"]["deviceId"] == "AA:BB"
    assert body["hasLostModeCommand"] is True
    assert body["lostModeCommand"]["commandType"] == "enable_lost_mode"
    assert body["latestLocation"] is None
    assert body["unreadAlertsCount"] == 0


@pytest.mark.asyncio
async def test_invalid_config_command_returns_400(client) -> None:
    await _register(client)
    r = await client.post(
        "/api/devices/AA:BB/commands",
        json={"commandType": "update_config", "payload": {"lostModeInterval": 100}},
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_unknown_device_on_dashboard_is_404(client) -> None:
    r = await client.get("/api/devices/NOPE")
    assert r.status_code == 404
    assert r.json() == {"error": "Device not found"}


@pytest.mark.asyncio
async def test_geofence_lifecycle_through_api(client) -> None:
    await _register(client)

    r = await client.post(
        "/api/devices/AA:BB/geofences",
        json={"name": "Casa", "centerLatitude": 45.4642, "centerLongitude": 9.19, "radius": 100},
    )
    assert r.status_code == 201
    created = r.json()
    assert created["autoCommand"]["type"] == "enable_geofence_monitoring"
    geofence_id = created["geofence"]["id"]

    r = await client.put(f"/api/geofences/{geofence_id}", json={"radius": 250})
    assert r.json()["geofence"]["radius"] == 250

    r = await client.delete(f"/api/geofences/{geofence_id}")
    assert r.json()["autoCommand"]["type"] == "disable_geofence_monitoring"
    assert (await client.get("/api/devices/AA:BB/geofences")).json() == []

    r = await client.post("/api/devices/AA:BB/sync-geofencing")
    assert r.json()["action"] == "disabled"
    assert r.json()["geofences"] == 0


@pytest.mark.asyncio
async def test_system_logs_pagination(client) -> None:
    await _register(client)
    await _register(client)
    await client.post("/api/devices/AA:BB/commands", json={"commandType": "reboot"})

    r = await client.get("/api/system-logs", params={"deviceId": "AA:BB", "limit": 2})

    body = r.json()
    assert r.status_code == 200
    assert len(body["logs"]) == 2
    assert body["totalCount"] >= 4
    assert body["hasMore"] is True
    assert body["logs"][0]["message"] == "Command created: reboot"
    assert body["logs"][0]["metadata"]["source"] == "web_interface"

    r = await client.get("/api/system-logs", params={"deviceId": "UNKNOWN"})
    assert r.json() == {"logs": [], "totalCount": 0, "hasMore": False}
