"""Reconcilers, reconcile results and watch declarations."""

from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    ClassVar,
    Generic,
    TypeVar,
    dataclass_transform,
    get_args,
    get_origin,
)

from pydantic import ValidationError

from fanout.domain.shared.error import ConfigInvalid, NotFoundError
from fanout.domain.shared.model.resource import Kind, ObjectKey, Resource
from fanout.domain.shared.port.control_plane import ControlPlane

R = TypeVar("R", bound=Resource)

Request = ObjectKey


@dataclass(frozen=True)
class Result:
    """Outcome of one reconcile pass.

    Attributes:
        requeue: Requeue with rate-limited backoff.
        requeue_after: Requeue after this many seconds (takes precedence).
    """

    requeue: bool = False
    requeue_after: float | None = None


@dataclass(frozen=True)
class SecondaryWatch:
    """A watch on a kind the reconciler does not own.

    Events are handed to ``Reconciler.map_secondary`` to find the keys of
    primary objects that must be reconciled again.
    """

    kind: Kind
    label_selector: str | None = None


def _extract_resource_type(cls: type) -> type[Resource] | None:
    """Extract the resource type R from Reconciler[R] in class bases."""
    for base in getattr(cls, "__orig_bases__", []):
        origin = get_origin(base)
        if origin is not None and getattr(origin, "__name__", None) == "Reconciler":
            args = get_args(base)
            if args and isinstance(args[0], type) and issubclass(args[0], Resource):
                return args[0]
    return None


@dataclass_transform()
class _ReconcilerMeta(ABCMeta):
    """Metaclass that applies @dataclass and extracts __resource__ from Reconciler[R]."""

    def __new__(mcs, name: str, bases: tuple[type, ...], namespace: dict[str, Any]) -> type:
        cls = super().__new__(mcs, name, bases, namespace)
        if any(isinstance(b, mcs) for b in bases):
            cls = dataclass(cls)
            resource_type = _extract_resource_type(cls)
            if resource_type is not None:
                cls.__resource__ = resource_type
        return cls


class Reconciler(Generic[R], metaclass=_ReconcilerMeta):
    """Base class for level-triggered reconcilers.

    Subclasses are automatically dataclasses with DI-injected dependencies.
    The primary resource type is extracted from the generic parameter.

    Configuration is via class variables:
        __owns__: Kinds created by this reconciler; their events enqueue the
            owner found in their controller owner reference.
        __owns_selector__: Label selector narrowing the watches on owned kinds.
        __watches__: Secondary watches resolved through map_secondary().
        __max_concurrent__: Workers consuming this reconciler's queue.

    Example:
        class FanOutJobReconciler(Reconciler[FanOutJob]):
            __owns__ = (CONFIG_MAP, JOB)
            __owns_selector__ = OWNER_LABEL

            control_plane: ControlPlane

            async def reconcile(self, request: Request) -> Result:
                ...
    """

    __resource__: ClassVar[type[Resource]]
    __owns__: ClassVar[tuple[Kind, ...]] = ()
    __owns_selector__: ClassVar[str | None] = None
    __watches__: ClassVar[tuple[SecondaryWatch, ...]] = ()
    __max_concurrent__: ClassVar[int] = 1

    @classmethod
    def primary_kind(cls) -> Kind:
        return cls.__resource__.__kind__

    @abstractmethod
    async def reconcile(self, request: Request) -> Result:
        """Drive the object named by ``request`` toward its desired state."""
        ...

    async def map_secondary(self, watch: SecondaryWatch, obj: dict[str, Any]) -> list[Request]:
        """Map a secondary object to the primary keys that depend on it."""
        return []


async def load_resource(
    control_plane: ControlPlane, resource_type: type[R], key: ObjectKey
) -> R | None:
    """Fetch and parse the object at ``key``; None once it is gone.

    Raises:
        ConfigInvalid: If the stored object does not match the schema.
    """
    try:
        obj = await control_plane.get(resource_type.__kind__, key)
    except NotFoundError:
        return None
    try:
        return resource_type.from_object(obj)
    except ValidationError as e:
        raise ConfigInvalid(f"{resource_type.__kind__.kind} {key} is malformed: {e}") from e
