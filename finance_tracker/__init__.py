"""Personal and family finance tracker."""

__version__ = "0.1.0"
