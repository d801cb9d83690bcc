"""
Agent query queue worker.

Exports:
    JobQueueConsumer: Runs pending queue rows through the orchestrator
    QueuePoller: Periodic table reader feeding the consumer
    build_consumer: Wires a consumer from configuration
    run_queue_consumer: Standalone entry point
"""

from .consumer import JobQueueConsumer, parse_query_json
from .listener import QueuePoller, build_consumer, run_queue_consumer

__all__ = [
    'JobQueueConsumer',
    'parse_query_json',
    'QueuePoller',
    'build_consumer',
    'run_queue_consumer',
]
