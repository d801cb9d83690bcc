"""
geoagent - agent-driven geospatial query pipeline.

Packages:
    store:        Reactive state store (path pub/sub, undo/redo)
    services:     Source catalog, feature fetcher, treatments, orchestrator
    queue_worker: Host table consumed as a durable job queue
    infrastructure: Host table access (Grist REST, in-memory)
    config:       Environment-driven configuration
    core:         Models, errors and pure logic
"""

__version__ = "0.1.0"
