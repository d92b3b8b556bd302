"""
MODULE OVERVIEW:
The Rich terminal dashboard for the notification center.

WHAT IS HAPPENING HERE:
We run the notification center against the in-memory realtime hub, feed it
with the demo change generators plus a few simulated colleagues coming and
going on the presence channel, and redraw a Rich Layout four times a second:
the feed on the left, counters, the online roster and recent toasts on the right.
"""

import asyncio
import random
from datetime import datetime

from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from realtime.channels import InMemoryRealtimeClient
from realtime.notifications import NotificationCenter
from realtime.toasts import RecordingToaster
from server.dummy_data import get_all_generators
from server.main import generator_runner
from shared.config import settings

TYPE_STYLES = {
    "maintenance_request": "yellow",
    "payment_update": "green",
    "emergency": "red bold",
    "message": "cyan",
    "system": "magenta",
}

COLLEAGUES = ["alice", "bilal", "chen", "dana", "emeka"]


async def simulate_colleagues(client: InMemoryRealtimeClient, interval_s: float = 3.0) -> None:
    """Other users join, change status and leave the presence channel."""
    channels = {}
    while True:
        user = random.choice(COLLEAGUES)
        if user in channels and random.random() < 0.3:
            await channels.pop(user).unsubscribe()
        else:
            channel = channels.get(user)
            if channel is None:
                channel = await client.channel(settings.PRESENCE_CHANNEL, presence_key=user).subscribe()
                channels[user] = channel
            await channel.track({
                "user_id": user,
                "online_at": datetime.now().isoformat(),
                "status": random.choice(["online", "away", "busy"]),
                "current_page": random.choice(["/properties", "/tenants", "/maintenance", "/billing"]),
            })
        await asyncio.sleep(interval_s)


class FeedDashboard:
    def __init__(self, center: NotificationCenter, toaster: RecordingToaster):
        self.center = center
        self.toaster = toaster

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats", size=7),
            Layout(name="presence"),
            Layout(name="toasts")
        )

        unread = self.center.unread_count
        color = "red" if unread > 20 else "yellow" if unread else "green"
        layout["header"].update(Panel(f"[{color} bold]Notifications | Unread: {unread}[/]", style=color))

        table = Table(title="Live Notification Feed", expand=True)
        table.add_column("Time", style="cyan", no_wrap=True)
        table.add_column("Type")
        table.add_column("Message", style="white")
        table.add_column("Read", justify="center")

        for n in self.center.notifications[:20]:
            ts = n.timestamp[11:19]
            style = TYPE_STYLES.get(n.type, "white")
            table.add_row(ts, f"[{style}]{n.type}[/]", n.message, "✓" if n.read else "")
        layout["left"].update(Panel(table, title="Feed"))

        stats = self.center.stats()
        layout["stats"].update(Panel(
            f"Feed length: {stats.feed_length}/{self.center.feed_limit}\n"
            f"Unread: {stats.unread_count}\n"
            f"Received: {stats.total_received}\n"
            f"Channels: {stats.active_channels}",
            title="Center Stats",
        ))

        roster = "\n".join(
            f"{u.user_id:<14} {u.status:<7} {u.current_page or ''}" for u in self.center.online_users
        )
        layout["presence"].update(Panel(roster or "nobody online", title="Online"))

        recent = self.toaster.toasts[-5:]
        layout["toasts"].update(Panel(
            "\n".join(f"{t['title']}: {t['description']}" for t in reversed(recent)),
            title="Toasts",
        ))
        return layout

    async def run(self, duration_s: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_s
        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while loop.time() < deadline:
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)


async def run_dashboard(duration_s: float = 60.0) -> None:
    client = InMemoryRealtimeClient()
    toaster = RecordingToaster()
    center = NotificationCenter(client, toaster=toaster, user_id="cli-user")

    async with center:
        center.current_page = "/dashboard"
        await center.track_presence("online")

        tasks = [asyncio.create_task(generator_runner(client, gen)) for gen in get_all_generators()]
        tasks.append(asyncio.create_task(simulate_colleagues(client)))
        try:
            await FeedDashboard(center, toaster).run(duration_s)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
