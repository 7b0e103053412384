"""Resolve oci:// references and extract their first layer."""

__version__ = "0.1.0"
