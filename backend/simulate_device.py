#!/usr/bin/env python3
"""Simula el firmware de un rastreador contra un servidor en marcha."""
import json
import sys
import time
import requests

BACKEND_URL = "http://localhost:8000"
DEVICE_ID = sys.argv[1] if len(sys.argv) > 1 else "SIM-TRACKER-001"

# Centro de la geocerca de prueba y un punto dentro (~50 m)
CENTER = (-37.346403, -72.914955)
INSIDE = (-37.346000, -72.914900)

def post(path, payload=None):
    r = requests.post(f"{BACKEND_URL}{path}", json=payload or {}, timeout=10)
    return r.status_code, r.json()

def handle_reboot(body):
    if body.get("action") == "reboot":
        print(f"🔁 El servidor pide reinicio: {body.get('message')}")
        return True
    return False

print(f"🔍 1. Registrando {DEVICE_ID}...")
status, body = post("/api/device/register", {
    "deviceId": DEVICE_ID,
    "deviceName": "Simulador",
    "firmwareVersion": "1.0.0-sim",
})
print(f"   HTTP {status}")
print(json.dumps(body.get("config"), indent=2))

print("\n📍 2. Creando geocerca de prueba desde el panel...")
r = requests.post(
    f"{BACKEND_URL}/api/devices/{DEVICE_ID}/geofences",
    json={"name": f"Sim {time.strftime('%H:%M:%S')}", "centerLatitude": CENTER[0],
          "centerLongitude": CENTER[1], "radius": 150},
    timeout=10,
)
if r.status_code == 201:
    result = r.json()
    print(f"✅ Geocerca creada (ID: {result['geofence']['id']})")
    if result.get("autoCommand"):
        print(f"   Comando automático: {result['autoCommand']['type']}")
else:
    print(f"❌ Error: {r.text}")

print("\n💓 3. Heartbeat...")
status, body = post(f"/api/device/{DEVICE_ID}/heartbeat", {
    "status": "online",
    "batteryLevel": 87.5,
    "gps": {"lostModeActive": False, "geofenceActive": False, "satellites": 7, "hdop": 1.2},
    "network": {"signalQuality": 18, "operator": "SIM"},
})
if not handle_reboot(body):
    commands = body.get("commands", [])
    print(f"   {len(commands)} comandos pendientes")
    for command in commands:
        print(f"   → {command['commandType']} (ID: {command['id']})")
        status, ack = post(
            f"/api/device/{DEVICE_ID}/commands/{command['id']}/ack",
            {"status": "executed"},
        )
        print(f"     ack HTTP {status}: {ack.get('status')}")

print("\n📡 4. Enviando posición dentro de la geocerca...")
status, body = post(f"/api/device/{DEVICE_ID}/location", {
    "latitude": INSIDE[0],
    "longitude": INSIDE[1],
    "satellites": 7,
    "hdop": 1.2,
    "batteryLevel": 87.0,
})
if not handle_reboot(body):
    print(f"   HTTP {status} - posición {body.get('id')} guardada")

r = requests.get(f"{BACKEND_URL}/api/devices/{DEVICE_ID}/unread-alerts-count", timeout=10)
print(f"   Alertas sin leer: {r.json().get('count')}")

print("\n" + "=" * 50)
print("✅ SIMULACIÓN COMPLETADA")
print("=" * 50)
