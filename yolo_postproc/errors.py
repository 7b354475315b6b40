from __future__ import annotations


class YoloPostprocessError(ValueError):
    """
    Base class for every error raised while interpreting model outputs.

    Subclasses ValueError so callers that already guard `ValueError` around
    post-processing keep working.
    """


class ConfigurationError(YoloPostprocessError):
    """Class count / names / thresholds cannot be resolved consistently."""


class UnsupportedTaskError(YoloPostprocessError):
    """The task string does not name a known task kind."""


class ShapeError(YoloPostprocessError):
    """Output tensors are inconsistent with the declared model geometry."""
