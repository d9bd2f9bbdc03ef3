"""Case Chart Core: diagnosis linkage and region-namespaced assessments."""

__version__ = "0.1.0"
