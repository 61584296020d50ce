"""Model Context Protocol servers over stdio for greetings, workspace file access and bash commands."""

__version__ = "0.1.0"