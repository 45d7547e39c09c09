"""
Document model for zonescript.

Two layers:

- The accumulator (ZoneDocument, Domain, Record, Provider, ProviderUse,
  Modifier) is built by directive builders while a script runs. It is
  append-only: domains and records are never removed or reordered.
  Modifier sources are held by reference, so a table passed as a modifier
  literal and filled in before its domain is declared is seen at finalize
  time; declaring the domain seals such tables against assignment.
- The snapshot (ZoneSnapshot and the *Snapshot classes) is produced by the
  finalizer. It is made of frozen dataclasses, tuples and read-only
  mappings, and is the only thing the serializer reads.

Source locations are carried everywhere for diagnostics but excluded from
snapshot equality, so a round trip through the native syntax compares equal.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .dsl.errors import error_immutable_target
from .dsl.tokens import SourceSpan


RECORD_TYPES = ("A", "AAAA", "ALIAS", "CAA", "CNAME", "MX", "NS", "PTR", "SRV", "TXT")

REGISTRAR = "registrar"
DNS = "dns"

# Domain lists a late-bound D item can add to
DOMAIN_PARTS = ("records", "dns_providers", "modifier_sources")


@dataclass(frozen=True)
class Reference:
    """A global name read before it was bound; resolved by the finalizer."""
    name: str
    span: SourceSpan

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class Effect:
    """One observable side effect of evaluation, in execution order."""
    action: str                 # directive name (D, A, TTL, NewRegistrar, include...)
    subject: str                # what it acted on
    location: SourceSpan = field(compare=False)

    def __str__(self) -> str:
        return f"{self.location.start}: {self.action} {self.subject}"


@dataclass(eq=False)
class Modifier:
    """Handle returned by a modifier builder (TTL(300), NO_PURGE, Meta{...})."""
    entries: Dict[str, Any]
    directive: str
    span: SourceSpan

    def __repr__(self) -> str:
        return f"Modifier({self.directive}, {self.entries!r})"


@dataclass(eq=False)
class Provider:
    """A registered registrar or DNS provider."""
    kind: str                   # REGISTRAR or DNS
    name: str
    type: str = "-"             # "-" defers to the engine's credentials file
    meta: Any = None            # opaque table, never inspected
    span: Optional[SourceSpan] = None

    def __repr__(self) -> str:
        return f"Provider({self.kind}, {self.name!r}, {self.type!r})"


@dataclass(eq=False)
class ProviderUse:
    """DnsProvider(provider[, nameserver_count]) binding inside a domain."""
    provider: Union[Provider, Reference]
    nameserver_count: Any = None
    span: Optional[SourceSpan] = None


class _Target:
    """Shared modifier bookkeeping for records and domains."""

    span: SourceSpan
    closed: bool
    modifier_sources: List[Any]

    def describe(self) -> str:
        raise NotImplementedError

    def check_open(self, span: SourceSpan) -> None:
        if self.closed:
            raise error_immutable_target(
                self.describe(),
                f"closed when its domain was declared at {self.closed_at()}",
                span,
            )

    def closed_at(self) -> str:
        return str(self.span.start)

    def add_modifier(self, source: Any, span: SourceSpan) -> None:
        """Attach a Modifier handle or a modifier table; later keys win."""
        self.check_open(span)
        self.modifier_sources.append(source)


@dataclass(eq=False)
class Record(_Target):
    """A resource record under construction."""
    rtype: str
    fields: List[Any]
    span: SourceSpan
    modifier_sources: List[Any] = field(default_factory=list)
    domain: Optional["Domain"] = None
    closed: bool = False

    def describe(self) -> str:
        name = self.fields[0] if self.fields else "?"
        return f"{self.rtype} record '{name}'"

    def closed_at(self) -> str:
        if self.domain is not None:
            return str(self.domain.span.start)
        return str(self.span.start)

    def __repr__(self) -> str:
        return f"Record({self.rtype}, {self.fields!r})"


@dataclass(eq=False)
class Deferred:
    """A domain item that was an unbound reference when D ran."""
    reference: Reference
    index: int                  # 1-based argument index in the D call
    # length of each DOMAIN_PARTS list when D reached this item
    positions: Dict[str, int] = field(default_factory=dict)


@dataclass(eq=False)
class Domain(_Target):
    """A domain declaration and everything attached to it."""
    name: Any
    span: SourceSpan
    registrar: Union[Provider, Reference, None] = None
    dns_providers: List[ProviderUse] = field(default_factory=list)
    modifier_sources: List[Any] = field(default_factory=list)
    records: List[Record] = field(default_factory=list)
    deferred: List[Deferred] = field(default_factory=list)
    closed: bool = False

    def describe(self) -> str:
        return f"domain '{self.name}'"

    def add_record(self, record: Record, span: SourceSpan) -> None:
        self.check_open(span)
        if record.domain is not None:
            raise error_immutable_target(
                record.describe(),
                f"already owned by domain '{record.domain.name}'",
                span,
            )
        record.domain = self
        self.records.append(record)

    def close(self) -> None:
        """Close the domain and every record it owns."""
        self.closed = True
        for record in self.records:
            record.closed = True


class ZoneDocument:
    """
    Accumulator owned by one evaluation pass.

    Builders in the directive registry are the only code that mutates it.
    """

    def __init__(self):
        self.domains: List[Domain] = []
        self.providers: List[Provider] = []
        self.effects: List[Effect] = []
        # (reference, directive, index, expected kinds) for every reference
        # passed to a directive, checked again by the finalizer
        self.pending: List[Tuple[Reference, str, int, Tuple[str, ...]]] = []

    def record_effect(self, action: str, subject: str, span: SourceSpan) -> None:
        self.effects.append(Effect(action, subject, span))

    def find_provider(self, kind: str, name: str) -> Optional[Provider]:
        for provider in self.providers:
            if provider.kind == kind and provider.name == name:
                return provider
        return None

    def add_provider(self, provider: Provider) -> None:
        self.providers.append(provider)

    def add_domain(self, domain: Domain) -> None:
        self.domains.append(domain)

    def __repr__(self) -> str:
        return f"ZoneDocument({len(self.domains)} domains, {len(self.providers)} providers)"


# =============================================================================
# Frozen snapshot
# =============================================================================

@dataclass(frozen=True)
class ProviderSnapshot:
    kind: str
    name: str
    type: str
    meta: Optional[Mapping[str, Any]]
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass(frozen=True)
class ProviderUseSnapshot:
    provider: ProviderSnapshot
    nameserver_count: Optional[int] = None


@dataclass(frozen=True)
class RecordSnapshot:
    rtype: str
    fields: Tuple[Any, ...]
    modifiers: Mapping[str, Any]
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass(frozen=True)
class DomainSnapshot:
    name: str
    registrar: Optional[ProviderSnapshot]
    dns_providers: Tuple[ProviderUseSnapshot, ...]
    modifiers: Mapping[str, Any]
    records: Tuple[RecordSnapshot, ...]
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass(frozen=True)
class ZoneSnapshot:
    """The finalized, immutable configuration handed to the serializer."""
    providers: Tuple[ProviderSnapshot, ...]
    domains: Tuple[DomainSnapshot, ...]
    filename: Optional[str] = field(default=None, compare=False)
    source_signature: Optional[str] = field(default=None, compare=False)

    def domain(self, name: str) -> Optional[DomainSnapshot]:
        for domain in self.domains:
            if domain.name == name:
                return domain
        return None
