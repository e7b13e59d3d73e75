"""
Turbine robot simulator.

Sends heartbeats to a running GSU Cloud, follows the configuration it gets
back, and uploads a synthetic thermal capture (.npy) on every scan step.
"""

import argparse
import time
from typing import Dict, Optional

import numpy as np
import requests

from .matrix import encode


def synth_thermal_frame(
    rows: int,
    cols: int,
    ambient_c: float = 25.0,
    hotspot_c: Optional[float] = None,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    rng = rng or np.random.default_rng()
    # Sensor noise floor around ambient
    frame = ambient_c + 0.5 * rng.standard_normal((rows, cols))

    if hotspot_c is not None:
        # Gaussian hot spot somewhere on the blade
        cy, cx = rng.uniform(0, rows), rng.uniform(0, cols)
        sigma = max(rows, cols) / 8.0
        yy, xx = np.mgrid[0:rows, 0:cols]
        blob = np.exp(-((yy - cy) ** 2 + (xx - cx) ** 2) / (2 * sigma**2))
        frame += (hotspot_c - ambient_c) * blob

    return frame.astype(np.float32)


def next_angle(angle: float, step: float) -> float:
    return (angle + step) % 360.0


def build_heartbeat(token: str, mode: str, angle: float, max_temp: float) -> Dict:
    return {
        "turbine_token": token,
        "mode": mode,
        "current_angle": float(angle),
        "current_max_temp": float(max_temp),
    }


def post_heartbeat(backend: str, payload: Dict, timeout: float = 5.0) -> Dict:
    resp = requests.post(f"{backend}/ingest/heartbeat", json=payload, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def upload_capture(backend: str, token: str, angle: float, frame: np.ndarray, timeout: float = 30.0) -> str:
    files = {"dataset_file": ("capture.npy", encode(frame), "application/octet-stream")}
    data = {"turbine_token": token, "angle": str(angle)}
    resp = requests.post(f"{backend}/ingest/upload", data=data, files=files, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def run(backend: str, token: str, cycles: int, rows: int, cols: int, hotspot_every: int = 3) -> None:
    rng = np.random.default_rng()
    angle = 0.0
    max_temp = 0.0
    for cycle in range(cycles):
        config = post_heartbeat(backend, build_heartbeat(token, "Scanning", angle, max_temp))
        if not config.get("system_enabled", True):
            print(f"[{cycle}] system disabled by operator, idling")
            post_heartbeat(backend, build_heartbeat(token, "Idle", angle, max_temp))
        else:
            hotspot = config["max_temp_trigger"] + 5.0 if hotspot_every and cycle % hotspot_every == 0 else None
            frame = synth_thermal_frame(rows, cols, hotspot_c=hotspot, rng=rng)
            max_temp = float(frame.max())
            result = upload_capture(backend, token, angle, frame)
            print(f"[{cycle}] angle={angle:.1f} max_temp={max_temp:.1f} -> {result}")
            angle = next_angle(angle, config.get("pan_step_degrees", 15.0))
        time.sleep(config.get("scan_wait_time_sec", 10))


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--backend", default="http://localhost:8080", help="GSU Cloud URL")
    parser.add_argument("--token", default="T1", help="turbine token reported by this robot")
    parser.add_argument("--cycles", type=int, default=10)
    parser.add_argument("--rows", type=int, default=24)
    parser.add_argument("--cols", type=int, default=32)
    args = parser.parse_args()

    run(args.backend, args.token, args.cycles, args.rows, args.cols)


if __name__ == "__main__":
    main()
