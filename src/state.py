"""Shared operator state - thread-safe singleton for Azure and Kubernetes clients."""

import threading
from dataclasses import dataclass, field

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from azure_client import AzureClient
from locks import NamedLockRegistry


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    This class provides thread-safe access to shared operator resources:
    - Azure client
    - Named lock registry
    - Kubernetes API client

    All handlers should use the global `state` instance rather than
    creating their own clients.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _azure_client: AzureClient | None = field(default=None, repr=False)
    _locks: NamedLockRegistry | None = field(default=None, repr=False)
    _k8s_core_api: k8s_client.CoreV1Api | None = field(default=None, repr=False)
    _k8s_configured: bool = field(default=False, repr=False)

    def _ensure_k8s_config(self) -> None:
        """Ensure Kubernetes configuration is loaded (must hold lock)."""
        if not self._k8s_configured:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config()
            self._k8s_configured = True

    def get_azure_client(self) -> AzureClient:
        """Get or create the Azure client (thread-safe)."""
        with self._lock:
            if self._azure_client is None:
                self._azure_client = AzureClient()
            return self._azure_client

    def get_lock_registry(self) -> NamedLockRegistry:
        """Get or create the named lock registry shared by all handlers."""
        with self._lock:
            if self._locks is None:
                self._locks = NamedLockRegistry()
            return self._locks

    def get_k8s_core_api(self) -> k8s_client.CoreV1Api:
        """Get or create the Kubernetes CoreV1Api client (thread-safe)."""
        with self._lock:
            self._ensure_k8s_config()
            if self._k8s_core_api is None:
                self._k8s_core_api = k8s_client.CoreV1Api()
            return self._k8s_core_api

    def close(self) -> None:
        """Close all connections."""
        with self._lock:
            if self._azure_client is not None:
                self._azure_client.close()
                self._azure_client = None


# Global operator state singleton
state = OperatorState()


def get_azure_client() -> AzureClient:
    """Get the shared Azure client."""
    return state.get_azure_client()


def get_lock_registry() -> NamedLockRegistry:
    """Get the shared named lock registry."""
    return state.get_lock_registry()


def get_k8s_core_api() -> k8s_client.CoreV1Api:
    """Get the shared Kubernetes CoreV1Api client."""
    return state.get_k8s_core_api()
