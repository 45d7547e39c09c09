"""
Finalizer for zonescript documents.

Takes the accumulator an evaluation left behind and produces the frozen
ZoneSnapshot the serializer reads:

- late-bound references are resolved against the final global environment
  and their argument kinds re-checked
- deferred domain items are spliced in where their D argument stood
- domain names are checked for uniqueness
- modifier sources are merged (last write wins, first position kept)
- tables become tuples and read-only mappings

Nothing is returned on failure; the first problem raises.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set

import structlog

from .dsl.errors import (
    error_argument_type,
    error_duplicate_domain,
    error_duplicate_provider,
    error_unresolved_reference,
    error_unserializable,
)
from .dsl.runtime.interpreter import Evaluation
from .dsl.runtime.values import LuaTable, is_number, kind_of
from .dsl.tokens import SourceSpan
from .model import (
    DNS, DOMAIN_PARTS, REGISTRAR, Domain, DomainSnapshot, Modifier, Provider,
    ProviderSnapshot, ProviderUse, ProviderUseSnapshot, Record,
    RecordSnapshot, Reference, ZoneDocument, ZoneSnapshot,
)
from .registry import attach_domain_item, check_kind

log = structlog.get_logger(__name__)

_EMPTY: Mapping[str, Any] = MappingProxyType({})


class Finalizer:
    """
    Single pass from accumulator to snapshot.

    Usage:
        snapshot = Finalizer(evaluation.document, evaluation.globals).finalize()
    """

    def __init__(self, document: ZoneDocument, globals: Dict[str, Any],
                 filename: Optional[str] = None, source_signature: Optional[str] = None):
        self.document = document
        self.globals = globals
        self.filename = filename
        self.source_signature = source_signature
        self._providers: Dict[int, ProviderSnapshot] = {}

    def finalize(self) -> ZoneSnapshot:
        self._check_pending()
        for domain in self.document.domains:
            self._apply_deferred(domain)

        providers = tuple(self._freeze_providers())
        domains = []
        seen: Dict[str, Domain] = {}
        for domain in self.document.domains:
            name = self._resolve(domain.name)
            if name in seen:
                raise error_duplicate_domain(name, seen[name].span, domain.span)
            seen[name] = domain
            domains.append(self._freeze_domain(domain, name))

        log.debug(
            "finalize.done",
            domains=len(domains),
            records=sum(len(d.records) for d in domains),
            providers=len(providers),
        )
        return ZoneSnapshot(
            providers=providers,
            domains=tuple(domains),
            filename=self.filename,
            source_signature=self.source_signature,
        )

    # =========================================================================
    # References
    # =========================================================================

    def _resolve(self, value: Any) -> Any:
        """Follow a reference chain to a bound value."""
        if not isinstance(value, Reference):
            return value
        first = value
        visited: Set[str] = set()
        while isinstance(value, Reference):
            if value.name in visited or value.name not in self.globals:
                raise error_unresolved_reference(first.name, first.span)
            visited.add(value.name)
            value = self.globals[value.name]
        return value

    def _check_pending(self) -> None:
        """Kinds of late-bound arguments are checked once they are known."""
        for reference, directive, index, kinds in self.document.pending:
            check_kind(directive, kinds, self._resolve(reference), index, reference.span)

    def _apply_deferred(self, domain: Domain) -> None:
        """Attach late-bound items at the positions their arguments held in D."""
        if not domain.deferred:
            return
        inserted = dict.fromkeys(DOMAIN_PARTS, 0)
        domain.closed = False
        try:
            for deferred in domain.deferred:
                ends = {part: len(getattr(domain, part)) for part in DOMAIN_PARTS}
                item = self._resolve(deferred.reference)
                attach_domain_item(domain, item, deferred.index, deferred.reference.span, self.document)
                for part in DOMAIN_PARTS:
                    items = getattr(domain, part)
                    added = items[ends[part]:]
                    if not added:
                        continue
                    del items[ends[part]:]
                    at = deferred.positions.get(part, ends[part]) + inserted[part]
                    items[at:at] = added
                    inserted[part] += len(added)
        finally:
            domain.close()

    # =========================================================================
    # Freezing
    # =========================================================================

    def _freeze_providers(self) -> List[ProviderSnapshot]:
        snapshots = []
        seen: Dict[tuple, Provider] = {}
        for provider in self.document.providers:
            name = self._resolve(provider.name)
            ptype = self._resolve(provider.type)
            meta = self._resolve(provider.meta)
            if isinstance(ptype, LuaTable) and meta is None:
                ptype, meta = "-", ptype

            key = (provider.kind, name)
            if key in seen:
                label = "registrar" if provider.kind == REGISTRAR else "DNS provider"
                raise error_duplicate_provider(label, name, seen[key].span, provider.span)
            seen[key] = provider

            snapshot = ProviderSnapshot(
                kind=provider.kind,
                name=name,
                type=ptype,
                meta=self._freeze(meta, provider.span) if meta is not None else None,
                span=provider.span,
            )
            self._providers[id(provider)] = snapshot
            snapshots.append(snapshot)
        return snapshots

    def _provider_snapshot(self, value: Any, span: SourceSpan) -> ProviderSnapshot:
        provider = self._resolve(value)
        if not isinstance(provider, Provider):
            raise error_argument_type("DnsProvider", 1, "provider", kind_of(provider), span)
        return self._providers[id(provider)]

    def _freeze_domain(self, domain: Domain, name: str) -> DomainSnapshot:
        registrar = None
        if domain.registrar is not None:
            registrar = self._provider_snapshot(domain.registrar, domain.span)

        uses = []
        for use in domain.dns_providers:
            snapshot = self._freeze_provider_use(use)
            uses.append(snapshot)

        return DomainSnapshot(
            name=name,
            registrar=registrar,
            dns_providers=tuple(uses),
            modifiers=self._merge(domain.modifier_sources, domain.span),
            records=tuple(self._freeze_record(record) for record in domain.records),
            span=domain.span,
        )

    def _freeze_provider_use(self, use: ProviderUse) -> ProviderUseSnapshot:
        provider = self._provider_snapshot(use.provider, use.span)
        if provider.kind != DNS:
            raise error_argument_type("DnsProvider", 1, "dns provider", "registrar provider", use.span)
        count = self._resolve(use.nameserver_count)
        return ProviderUseSnapshot(provider=provider, nameserver_count=count)

    def _freeze_record(self, record: Record) -> RecordSnapshot:
        return RecordSnapshot(
            rtype=record.rtype,
            fields=tuple(self._freeze(value, record.span) for value in record.fields),
            modifiers=self._merge(record.modifier_sources, record.span),
            span=record.span,
        )

    def _merge(self, sources: List[Any], span: SourceSpan) -> Mapping[str, Any]:
        """Combine modifier handles and tables; a repeated key keeps its first position."""
        merged: Dict[str, Any] = {}
        for source in sources:
            source = self._resolve(source)
            if isinstance(source, Modifier):
                entries = source.entries.items()
            elif isinstance(source, LuaTable):
                entries = source.items()
            else:
                raise error_unserializable(f"{kind_of(source)} value used as a modifier", span)
            for key, value in entries:
                if not isinstance(key, str):
                    raise error_unserializable(f"modifier key of type {kind_of(key)}", span)
                merged[key] = self._freeze(value, span)
        return MappingProxyType(merged) if merged else _EMPTY

    def _freeze(self, value: Any, span: SourceSpan, active: Optional[Set[int]] = None) -> Any:
        """Convert a runtime value into tuples, read-only mappings and scalars."""
        value = self._resolve(value)
        if isinstance(value, (bool, str)) or is_number(value):
            return value
        if isinstance(value, Modifier):
            value = LuaTable.from_dict(value.entries)
        if not isinstance(value, LuaTable):
            raise error_unserializable(f"{kind_of(value)} value cannot be rendered", span)

        active = set() if active is None else active
        if id(value) in active:
            raise error_unserializable("cyclic table cannot be rendered", span)
        active.add(id(value))
        try:
            if len(value) == 0:
                return _EMPTY
            if value.is_sequence():
                return tuple(self._freeze(item, span, active) for item in value.sequence())
            frozen = {}
            for key, item in value.items():
                if not isinstance(key, str):
                    raise error_unserializable(
                        f"table mixing {kind_of(key)} keys with string keys cannot be rendered", span
                    )
                frozen[key] = self._freeze(item, span, active)
            return MappingProxyType(frozen)
        finally:
            active.discard(id(value))


def finalize(evaluation: Evaluation) -> ZoneSnapshot:
    """
    Convenience function to finalize an evaluation.

    Raises:
        UnresolvedReference, ArgumentTypeError, DuplicateDomain,
        DuplicateProvider, ImmutableTarget, SerializationError
    """
    finalizer = Finalizer(
        evaluation.document,
        evaluation.globals,
        filename=evaluation.filename,
        source_signature=evaluation.source_signature,
    )
    return finalizer.finalize()
