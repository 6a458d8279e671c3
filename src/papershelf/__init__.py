"""papershelf: a local repository of academic papers."""

__version__ = "0.3.0"
