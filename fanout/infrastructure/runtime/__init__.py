"""Controller runtime - work queue, controllers and DI provider.

Import modules directly:
    from fanout.infrastructure.runtime.controller import Controller, ControllerManager
    from fanout.infrastructure.runtime.queue import WorkQueue
"""
