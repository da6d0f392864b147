"""Execution template and the source/shape fields shared by both fan-out kinds."""

import re
from decimal import ROUND_CEILING, Decimal

from pydantic import Field

from fanout.domain.shared.error import ConfigInvalid
from fanout.domain.shared.model.value import SchemaModel

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Quantity = str | int | float

_QUANTITY = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+))([numkMGTPE]|[KMGTPE]i)?$")
_DECIMAL_SUFFIXES = {
    "n": -9, "u": -6, "m": -3, "": 0, "k": 3, "M": 6, "G": 9, "T": 12, "P": 15, "E": 18
}
_BINARY_SUFFIXES = {"Ki": 10, "Mi": 20, "Gi": 30, "Ti": 40, "Pi": 50, "Ei": 60}


def canonical_quantity(value: Quantity) -> str:
    """Format a resource quantity the way the API server stores it.

    ``0.5`` becomes ``500m``, ``1000m`` becomes ``1`` and ``1024Mi``
    becomes ``1Gi``. Values finer than a nano unit round up. Exponent
    forms and strings that are not quantities are returned unchanged.
    """
    raw = value if isinstance(value, str) else format(Decimal(str(value)), "f")
    match = _QUANTITY.match(raw.strip())
    if match is None:
        return raw
    number, suffix = Decimal(match.group(1)), match.group(2) or ""
    if number == 0:
        return "0"

    if suffix in _BINARY_SUFFIXES:
        amount = number * (1 << _BINARY_SUFFIXES[suffix])
        if amount == amount.to_integral_value():
            amount_int = int(amount)
            for unit, shift in sorted(_BINARY_SUFFIXES.items(), key=lambda i: -i[1]):
                if amount_int % (1 << shift) == 0:
                    return f"{amount_int >> shift}{unit}"
            return str(amount_int)
    else:
        amount = number.scaleb(_DECIMAL_SUFFIXES[suffix])

    amount = amount.scaleb(9).to_integral_value(rounding=ROUND_CEILING).scaleb(-9)
    for unit, exponent in sorted(_DECIMAL_SUFFIXES.items(), key=lambda i: -i[1]):
        scaled = amount.scaleb(-exponent)
        if scaled == scaled.to_integral_value():
            return f"{int(scaled)}{unit}"
    return raw


class ResourceRequirements(SchemaModel):
    requests: dict[str, Quantity] = Field(default_factory=dict)
    limits: dict[str, Quantity] = Field(default_factory=dict)


class ExecutionTemplate(SchemaModel):
    """What every execution unit runs once its item is exported."""

    image: str
    command: list[str] = Field(default_factory=list)
    env_name: str | None = None  # Defaults to the operator-wide name (ITEM)
    resources: ResourceRequirements | None = None

    def resolved_env_name(self, default: str) -> str:
        """Name of the variable carrying the item.

        Raises:
            ConfigInvalid: If the name is not a valid shell identifier.
        """
        name = self.env_name or default
        if not _ENV_NAME.match(name):
            raise ConfigInvalid(
                f"envName {name!r} is not a valid shell variable name",
                field="template.envName",
            )
        return name


class FanOutSpec(SchemaModel):
    """Fields common to FanOutJob and FanOutSchedule.

    Exactly one source is expected: ``staticList`` inline, or
    ``listSourceRef`` naming a ListSource in the same namespace. A
    non-empty inline list wins when both are set.
    """

    static_list: list[str] | None = None
    list_source_ref: str | None = None
    parallelism: int = Field(default=1, ge=1)
    template: ExecutionTemplate
    ttl_seconds_after_finished: int | None = Field(default=None, ge=0)
