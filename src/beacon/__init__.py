"""Beacon: keeps a service record alive in etcd while a command runs."""

__version__ = '0.1.0'
