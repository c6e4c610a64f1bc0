#!/usr/bin/env python3
"""
Quick Start - Read, write and query documents without a server.

Usage:
    python examples/quick_start.py
"""

import asyncio

from conduit import DESC, MemoryHandler, field, init_app


async def main():
    # The LOCAL connector runs every operation against an in-process store
    app = init_app(connector="LOCAL", op_handlers=MemoryHandler())
    users = app.db.users

    await users.set("alice", {"name": "Alice", "age": 34, "address": {"city": "Oslo"}})
    await users.set("bob", {"name": "Bob", "age": 17})
    await users.push({"name": "Carol", "age": 52})

    # Chained access builds a path; nothing runs until resolve/set/delete
    await users.alice.address.city.set("Bergen")
    print(f"Alice lives in {await users.alice.address.city.resolve()}")

    adults = users.filter(field("age") >= 18).order_by("age", DESC).map(field("name"))
    print(f"Adults, oldest first: {await adults.resolve()}")
    print(f"Documents: {await users.size()}")

    await app.close()


if __name__ == "__main__":
    asyncio.run(main())
