"""Task orchestration engine.

Provides:
- Settings loaded from .env
- Structured logging
- A record store with single-statement compare-and-set updates
- The scheduler, dispatch executor and status aggregator
- A small CLI surface
"""
