# /flowbot/utils/metrics.py

from prometheus_client import Counter, Histogram

# All Prometheus metrics used by the engine and its host.

# Turn handling
turn_counter = Counter('dialog_turns_total', 'Turns handled', ['plugin', 'outcome'])
turn_duration_histogram = Histogram('dialog_turn_seconds', 'Turn handling time in seconds', ['plugin'])
flow_transitions_counter = Counter('dialog_flow_transitions_total', 'Flow lifecycle events', ['flow', 'event'])

# Vocabulary
vocab_hits_counter = Counter('dialog_vocab_hits_total', 'Vocabulary handler invocations', ['handler', 'result'])

# Storage
memory_operations_counter = Counter('memory_store_operations_total', 'Memory store operations', ['backend', 'operation', 'status'])
lock_wait_histogram = Histogram('conversation_lock_wait_seconds', 'Time spent waiting for a conversation lock', ['backend'])
