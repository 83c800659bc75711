"""Android runtime helpers for APEX-Harness.

This package intentionally contains *thin* wrappers around adb so that every
device operation the lifecycle performs is a single, blocking, auditable call.
"""
