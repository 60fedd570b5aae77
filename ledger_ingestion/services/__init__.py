"""Import services: account resolution and the parse/commit reconciler."""
