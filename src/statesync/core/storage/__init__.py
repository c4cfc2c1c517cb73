"""Durable storage mount management."""

from .mount import MountManager, S3FSMountManager

__all__ = ["MountManager", "S3FSMountManager"]
