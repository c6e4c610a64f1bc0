#!/usr/bin/env python3
"""
Live Updates - Watch a field and a query on a running server.

Usage:
    python examples/live_updates.py https://db.example.com EMAIL PASSWORD
"""

import asyncio
import logging
import sys

from conduit import App, AppConfig, field


async def main(server_url: str, email: str, password: str):
    async with App(AppConfig(server_url=server_url, connector="WS")) as app:
        await app.auth.sign_in({"email": email, "password": password})
        user = app.db.users[app.session.user_id]

        # Both callbacks share one server subscription
        stop_name = user.profile.name.subscribe(lambda name: print(f"name: {name}"))
        stop_log = user.profile.name.subscribe(lambda name: logging.info("name changed"))

        open_tasks = app.db.tasks.filter(field("done") == False).order_by("due")  # noqa: E712
        stop_tasks = open_tasks.subscribe(lambda tasks: print(f"{len(tasks)} open tasks"))

        await user.profile.name.set("Ann")
        task_id = await app.db.tasks.push({"title": "Write report", "done": False})
        print(f"Created task {task_id}")

        await asyncio.sleep(5)
        for stop in (stop_name, stop_log, stop_tasks):
            stop()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(*sys.argv[1:]))
