"""
Flapboard - scheduling engine for split-flap display boards.

- flapboard.core: storage, errors, logging, settings
- flapboard.scheduling: time windows, resolver, pins, locks, orchestrator
- flapboard.transports: device clients (Vestaboard)
- flapboard.rendering: reference text renderer
- flapboard.cli: operator CLI
"""

__version__ = "0.1.0"
