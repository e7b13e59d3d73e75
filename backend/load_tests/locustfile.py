import random

import numpy as np
from locust import HttpUser, task, between

from gsu_cloud.matrix import encode


def _heartbeat(token: str) -> dict:
    return {
        "turbine_token": token,
        "mode": random.choice(["Scanning", "Idle", "Returning"]),
        "current_angle": random.uniform(0.0, 360.0),
        "current_max_temp": random.uniform(20.0, 90.0),
    }


def _capture() -> bytes:
    return encode(20.0 + 60.0 * np.random.rand(24, 32))


class TurbineUser(HttpUser):
    wait_time = between(0.1, 1.5)

    def on_start(self):
        self.token = f"turbine-{random.randint(1, 1000)}"
        self.client.get("/health")

    @task(5)
    def heartbeat(self):
        self.client.post("/ingest/heartbeat", json=_heartbeat(self.token))

    @task(1)
    def upload(self):
        self.client.post(
            "/ingest/upload",
            data={"turbine_token": self.token, "angle": str(random.uniform(0.0, 360.0))},
            files={"dataset_file": ("capture.npy", _capture(), "application/octet-stream")},
        )


class OperatorUser(HttpUser):
    wait_time = between(0.5, 2.0)

    @task(3)
    def live(self):
        self.client.get("/api/live")

    @task(1)
    def alerts(self):
        self.client.get("/api/alerts")
