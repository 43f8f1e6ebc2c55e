"""Transport primitives that the engine can sit in front of."""
