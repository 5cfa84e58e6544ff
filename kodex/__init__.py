"""kodex: turn a web application's source tree into a help-center knowledge base."""

__version__ = "0.1.0"
