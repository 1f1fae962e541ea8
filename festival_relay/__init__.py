"""
Festival overlay relay.

Server side:
    core       — settings, logging, errors, middleware, health
    overlay    — overlay fragments, merged state store, display renderer
    sessions   — display session registry and push transports
    safety     — safety alert events, queues, fan-out, trigger words
    api        — FastAPI routers

Device side:
    client     — sync agent that pushes overlays and polls for alerts
"""

__version__ = "1.0.0"
