"""Exception types raised by viocore.

Configuration errors are fatal and raised at construction time. Degenerate
inputs (landmarks at infinity, failed back-projections, missing
associations) are not errors and never raise.
"""


class ConfigurationError(ValueError):
    """Invalid construction-time configuration. Never retried."""


class InformationMatrixError(ConfigurationError):
    """Information matrix is malformed or not symmetric positive definite."""


class MixedDistortionError(ConfigurationError):
    """Cameras of one rig use different distortion models."""


class UnsupportedDistortionError(ConfigurationError):
    """Distortion model has no supported focal length extraction."""
