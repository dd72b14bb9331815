"""
Address resolution and route sequencing engine for the rep route planner.

Subpackages:
- geocoding: free-text address to coordinate resolution with a durable cache
- sequencing: stop ordering, itinerary generation and itinerary export
- routing: driving route geometry from an OSRM server
"""

__version__ = "1.0.0"
