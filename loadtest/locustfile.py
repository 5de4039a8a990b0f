from __future__ import annotations

from locust import HttpUser, between, task


class ChatUser(HttpUser):
    wait_time = between(1, 5)

    @task(3)
    def ask_question(self) -> None:
        payload = {
            "message": "Top reps by revenue last month",
            "resolved": {"time_range": "calendar_month"},
            "history": [],
        }
        self.client.post("/api/chat", json=payload)

    @task(1)
    def describe_schema(self) -> None:
        self.client.get("/api/connect")
