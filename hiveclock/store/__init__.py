"""Durable per-instance records."""

from hiveclock.store.instance_store import InstanceStore, write_json_atomic
from hiveclock.store.models import InstanceState

__all__ = ["InstanceState", "InstanceStore", "write_json_atomic"]
