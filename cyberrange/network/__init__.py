# cyberrange/network/__init__.py
"""
Observer-facing network layer.

Modules:
- events: Inbound and outbound event names
- broadcast: Observer channels and fan-out
- session_registry: Connection sessions and operator join/leave
- range_server: JSON-lines TCP transport
"""
