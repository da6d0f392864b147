"""Kubernetes adapters - control plane, secrets and events.

Import modules directly:
    from fanout.infrastructure.kube.client import KubeControlPlane
    from fanout.infrastructure.kube.di import KubeProvider
"""
