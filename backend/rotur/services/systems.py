# rotur/services/systems.py
"""Registered client systems (the `os` a post may name)."""
import copy

from rotur.core.errors import BadInput, NotFound


def list_systems(store) -> dict:
    return store.systems.snapshot()


def set_system(store, name: str, info: dict) -> dict:
    if not name:
        raise BadInput("System name is required")
    if not isinstance(info, dict):
        raise BadInput("System info must be an object")
    with store.systems.write() as systems:
        systems[name] = dict(info)
        return copy.deepcopy(systems[name])


def delete_system(store, name: str) -> None:
    with store.systems.write() as systems:
        if systems.pop(name, None) is None:
            raise NotFound("System not found")
