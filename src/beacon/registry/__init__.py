"""
etcd Registry Transport

This package provides:
1. put_value - single PUT refreshing a key with a ttl
2. EtcdClient - HTTP client for listing registered services
3. EtcdNode / EtcdResponse / ServiceInfo - decoded response shapes
"""

from .etcd import (
    DEFAULT_API_ROOT,
    EtcdClient,
    EtcdNode,
    EtcdResponse,
    ServiceInfo,
    build_opener,
    key_url,
    put_value,
)

__all__ = [
    'DEFAULT_API_ROOT',
    'EtcdClient',
    'EtcdNode',
    'EtcdResponse',
    'ServiceInfo',
    'build_opener',
    'key_url',
    'put_value',
]
