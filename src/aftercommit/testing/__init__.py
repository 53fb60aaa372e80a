"""
Testing Support
Harness transaction and pytest plugin
"""
from aftercommit.testing.harness import HarnessTransaction

__all__ = ["HarnessTransaction"]
