"""Custom Dishka scopes for the operator."""

from dishka import BaseScope, new_scope


class Scope(BaseScope):  # type: ignore[misc]  # BaseScope is designed to be subclassed
    """Dependency injection scopes.

    Hierarchy: APP -> RECONCILE

    - APP: Process lifetime (config, HTTP clients, control plane)
    - RECONCILE: One reconcile pass or one secondary-watch mapping
    """

    APP = new_scope("APP")
    RECONCILE = new_scope("RECONCILE")
