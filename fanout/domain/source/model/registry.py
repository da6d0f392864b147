"""AdaptorRegistry - dispatch from sourceType to the adaptor that serves it."""

from fanout.domain.shared.error import ConfigInvalid
from fanout.domain.source.model.list_source import ListSourceSpec, SourceType
from fanout.domain.source.port.adaptor import SourceAdaptor


class AdaptorRegistry:
    """Registry of source adaptors keyed by source type.

    ``select`` is the only place that checks a spec's populated variant
    against its ``sourceType`` tag.
    """

    def __init__(self, adaptors: dict[SourceType, SourceAdaptor]) -> None:
        self._adaptors = adaptors

    def select(self, spec: ListSourceSpec) -> SourceAdaptor:
        """Return the adaptor for ``spec``.

        Raises:
            ConfigInvalid: If the populated variant does not match the tag,
                or no adaptor serves the tag.
        """
        populated = spec.populated_variants()
        if spec.source_type not in populated:
            raise ConfigInvalid(
                f"sourceType is {spec.source_type.value!r} but no "
                f"{_variant_field(spec.source_type)} configuration is set",
                field=_variant_field(spec.source_type),
            )
        extra = populated - {spec.source_type}
        if extra:
            names = ", ".join(sorted(_variant_field(t) for t in extra))
            raise ConfigInvalid(
                f"sourceType is {spec.source_type.value!r} but {names} is also set",
                field="sourceType",
            )

        adaptor = self._adaptors.get(spec.source_type)
        if adaptor is None:
            raise ConfigInvalid(f"Unsupported source type: {spec.source_type.value}")
        return adaptor


def _variant_field(source_type: SourceType) -> str:
    return {
        SourceType.STATIC: "staticList",
        SourceType.API: "api",
        SourceType.SQL: "sql",
    }[source_type]
