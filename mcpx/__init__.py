"""Model Context Protocol servers over stdio for files, Jupyter notebooks and PowerShell."""

__version__ = "0.1.0"