"""crossstore: cross-store consistency and caching primitives.

Service processes build a CoreRegistry once (crossstore.core.registry) and pass
its components to business services. Nothing here opens connections at import.
"""

__version__ = "1.0.0"
