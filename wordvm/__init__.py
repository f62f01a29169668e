"""A small stack-based virtual machine for 32-bit word bytecode images."""

__version__ = "0.1.0"
__all__ = ["__version__"]