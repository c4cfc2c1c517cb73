"""
Per-destination serialization of sync invocations.

Two syncs mirroring into the same mount path would interleave delete
passes, so every sync takes the lock for its mount path first. Locks are
kept per event loop because an asyncio.Lock cannot be shared across loops.
"""

from __future__ import annotations

import asyncio
import weakref

_locks: weakref.WeakKeyDictionary[
    asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
] = weakref.WeakKeyDictionary()


def destination_lock(mount_path: str) -> asyncio.Lock:
    """
    Get the lock guarding a mount path in the running event loop.

    Args:
        mount_path: Durable storage mount path

    Returns:
        The same asyncio.Lock for every call with the same path and loop
    """
    loop = asyncio.get_running_loop()
    per_loop = _locks.setdefault(loop, {})
    key = mount_path.rstrip("/") or "/"
    if key not in per_loop:
        per_loop[key] = asyncio.Lock()
    return per_loop[key]
