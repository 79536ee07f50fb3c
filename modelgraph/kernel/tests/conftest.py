"""
Kernel test configuration.

Model and Collection subclasses are declared per test module; the fixtures
here are the shared listeners.
"""

import pytest


class PatchRecorder:
    """Patch listener that keeps every (patch, model) it receives."""

    def __init__(self):
        self.calls = []

    def __call__(self, patch, model):
        self.calls.append((patch, model))

    @property
    def patches(self):
        return [patch for patch, _ in self.calls]

    @property
    def ops(self):
        return [(patch.op.value, patch.path) for patch, _ in self.calls]

    def clear(self):
        self.calls.clear()


@pytest.fixture
def recorder():
    return PatchRecorder()
