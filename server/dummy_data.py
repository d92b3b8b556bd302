"""
MODULE OVERVIEW:
Infinite background async generators that produce realistic row changes.

WHAT IS HAPPENING HERE:
In production these changes come from the hosted database's change-data-capture
stream. Here we fake inserts, updates and deletes on the maintenance and
payments tables so the notification center has constant traffic to react to.
Each generator yields plain change dicts: table, eventType, new, old.
"""

import asyncio
import random
from typing import Any, AsyncGenerator

from shared.config import settings

ChangeDict = dict[str, Any]

MAINTENANCE_TITLES = [
    "Leaking kitchen faucet",
    "HVAC not cooling",
    "Broken garage door opener",
    "Clogged bathroom drain",
    "Smoke detector chirping",
    "Cracked window in unit 4B",
]
PAYMENT_STATUSES = ["pending", "processing", "succeeded", "failed", "refunded"]


async def maintenance_change_generator(
    table: str = settings.MAINTENANCE_TABLE,
    interval_s: float = settings.DEMO_EVENT_INTERVAL_S,
) -> AsyncGenerator[ChangeDict, None]:
    """Opens requests, bumps their status, and now and then deletes one."""
    open_requests: dict[int, dict[str, Any]] = {}
    next_id = 1

    while True:
        roll = random.random()
        if not open_requests or roll < 0.5:
            record = {
                "id": next_id,
                "title": random.choice(MAINTENANCE_TITLES),
                "priority": random.choice(["low", "medium", "high", "emergency"]),
                "status": "open",
            }
            open_requests[next_id] = record
            next_id += 1
            yield {"table": table, "eventType": "INSERT", "new": dict(record), "old": None}
        elif roll < 0.85:
            record = open_requests[random.choice(list(open_requests))]
            old = dict(record)
            record["status"] = random.choice(["in_progress", "scheduled", "completed"])
            yield {"table": table, "eventType": "UPDATE", "new": dict(record), "old": old}
        else:
            record = open_requests.pop(random.choice(list(open_requests)))
            yield {"table": table, "eventType": "DELETE", "new": None, "old": record}
        await asyncio.sleep(random.uniform(0.5, 1.5) * interval_s)


async def payment_change_generator(
    table: str = settings.PAYMENTS_TABLE,
    interval_s: float = settings.DEMO_EVENT_INTERVAL_S,
) -> AsyncGenerator[ChangeDict, None]:
    """Rent payments in cents; updates walk the status field."""
    next_id = 1000

    while True:
        if random.random() < 0.6:
            record = {
                "id": next_id,
                "amount": random.randint(85_000, 320_000),
                "status": "pending",
                "tenant_id": f"tenant-{random.randint(1, 40)}",
            }
            next_id += 1
            yield {"table": table, "eventType": "INSERT", "new": record, "old": None}
        else:
            record = {
                "id": random.randint(1000, max(1000, next_id - 1)),
                "status": random.choice(PAYMENT_STATUSES),
            }
            yield {"table": table, "eventType": "UPDATE", "new": record, "old": None}
        await asyncio.sleep(random.uniform(0.5, 1.5) * interval_s)


def get_all_generators() -> list[AsyncGenerator[ChangeDict, None]]:
    return [maintenance_change_generator(), payment_change_generator()]
