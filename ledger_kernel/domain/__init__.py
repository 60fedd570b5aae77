"""Pure domain layer: value objects and rules with zero I/O."""
