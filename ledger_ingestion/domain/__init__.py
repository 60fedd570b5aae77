"""Pure import types and parsers.  Zero I/O."""
