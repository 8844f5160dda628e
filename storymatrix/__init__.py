"""storymatrix: step-by-step implementation workflow for change requests."""

__version__ = "0.1.0"
