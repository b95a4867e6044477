"""DocChat - question answering over uploaded documentation."""

__version__ = "0.1.0"
