"""Kernel services: the imperative shell around the domain rules."""
