"""depaudit: software composition analysis orchestration for multi-ecosystem projects."""

__version__ = "0.1.0"
