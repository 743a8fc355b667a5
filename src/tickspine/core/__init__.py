"""Shared primitives: errors, logging, settings, clocks and timers."""
