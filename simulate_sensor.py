# simulate_sensor.py
"""
Simulador de sensor de nivel: manda muestras periódicas a POST /api/sensor/data
para probar el historial y el stream SSE sin hardware.

Uso:
    python simulate_sensor.py --device 123456 --interval 2
"""

import argparse
import random
import time
from datetime import datetime, timezone
from typing import Dict

import requests

API_URL = "http://127.0.0.1:8000/api/sensor/data"


def next_sample(level: float, temp: float, rising: bool) -> Dict[str, float]:
    """
    Variación "realista": el nivel sube despacio hasta ~9.5 m y baja más rápido
    hasta ~2 m; la temperatura oscila entre 20 y 35 °C.
    """
    if rising:
        level += random.random() * 0.05
        if level > 9.5:
            rising = False
    else:
        level -= random.random() * 0.08
        if level < 2.0:
            rising = True

    temp += (random.random() - 0.5) * 0.3
    temp = max(20.0, min(35.0, temp))

    return {"level": level, "temp": temp, "rising": rising}


def main():
    parser = argparse.ArgumentParser(description="Simulador de sensor de tanque")
    parser.add_argument("--device", default="123456")
    parser.add_argument("--interval", type=float, default=2.0)
    parser.add_argument("--url", default=API_URL)
    args = parser.parse_args()

    level, temp, rising = 7.5, 25.0, True
    session = requests.Session()

    print(f"Sending sensor data for device {args.device} to {args.url} every {args.interval}s")

    while True:
        state = next_sample(level, temp, rising)
        level, temp, rising = state["level"], state["temp"], state["rising"]

        payload = {
            "deviceId": args.device,
            "waterLevel": round(level, 2),
            "temperature": round(temp, 1),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            resp = session.post(args.url, json=payload, timeout=10)
            if resp.ok:
                metrics = resp.json().get("metrics", {})
                print(f"Sent level={payload['waterLevel']}m -> {metrics.get('volumeLiters')} L")
            else:
                print(f"HTTP {resp.status_code}: {resp.text[:200]}")
        except requests.RequestException as exc:
            print(f"Error sending data: {exc}")

        time.sleep(args.interval)


if __name__ == "__main__":
    main()
