# rotur/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- rwlock: Reader/writer lock guarding each in-memory collection
- store: Process-lifetime collections and their JSON snapshots
- persister: Background writer for atomic collection snapshots
- watcher: Hot reload of the users file
- errors: Error kinds surfaced to API callers
- notifications: Outbound event bus and webhook worker
- security: Token generation and password hashing
- money: Two-decimal credit arithmetic
- timeutil: Millisecond clocks and calendar-aware period math
"""
