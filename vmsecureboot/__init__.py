"""Secure Boot module signing setup for VMware Workstation."""

__version__ = "0.1.0"
