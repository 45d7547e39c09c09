"""Render a ZoneSnapshot as dnscontrol JavaScript."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, TextIO, Tuple

from .dsl.errors import error_unserializable
from .dsl.runtime.provenance import Provenance
from .dsl.tokens import SourceSpan, point_span
from .model import (
    REGISTRAR, DomainSnapshot, ProviderSnapshot, ProviderUseSnapshot,
    RecordSnapshot, ZoneSnapshot,
)

MAX_SAFE_INTEGER = 2 ** 53

_BARE_KEY = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_]")

_ESCAPES = {
    '"': '\\"',
    '\\': '\\\\',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
    '\b': '\\b',
    '\f': '\\f',
    '\v': '\\v',
    '\u2028': '\\u2028',
    '\u2029': '\\u2029',
}


def quote_string(text: str) -> str:
    """Double-quoted JavaScript string literal; non-ASCII text passes through."""
    out = ['"']
    for ch in text:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def render_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else quote_string(key)


def render_value(value: Any, span: Optional[SourceSpan] = None) -> str:
    """Render a frozen snapshot value as a JavaScript literal."""
    span = span or point_span()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            raise error_unserializable(f"integer {value} is outside the exactly representable range", span)
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise error_unserializable(f"number {value} has no literal form", span)
        return repr(value)
    if isinstance(value, str):
        return quote_string(value)
    if isinstance(value, tuple):
        return "[" + ", ".join(render_value(item, span) for item in value) + "]"
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        parts = [f"{render_key(key)}: {render_value(item, span)}" for key, item in value.items()]
        return "{" + ", ".join(parts) + "}"
    raise error_unserializable(f"{type(value).__name__} value has no literal form", span)


@dataclass(frozen=True)
class _Binding:
    variable: str
    statement: str


class _NameAllocator:
    """Derive unique variable names from provider names."""

    def __init__(self) -> None:
        self.used: Set[str] = set()

    def allocate(self, prefix: str, name: str) -> str:
        base = f"{prefix}_{_UNSAFE_NAME.sub('_', name).upper()}"
        candidate, n = base, 1
        # a suffixed name can collide with another provider's plain name
        while candidate in self.used:
            n += 1
            candidate = f"{base}_{n}"
        self.used.add(candidate)
        return candidate


class Serializer:
    """
    Deterministic walk of a snapshot.

    Output order: provenance header, one var per provider in declaration
    order, then one D(...) block per domain.
    """

    def __init__(self, indent: int = 4, header: bool = True):
        self.indent = " " * indent
        self.header = header
        self._variables: Dict[int, str] = {}

    def serialize(self, snapshot: ZoneSnapshot) -> str:
        sections: List[str] = []

        if self.header:
            provenance = Provenance(
                filename=Path(snapshot.filename).name if snapshot.filename else None,
                source_signature=snapshot.source_signature or "",
            )
            sections.append("\n".join(provenance.header_lines()))

        bindings = self._bind_providers(snapshot.providers)
        if bindings:
            sections.append("\n".join(binding.statement for binding in bindings))

        for domain in snapshot.domains:
            sections.append(self._render_domain(domain))

        if not sections:
            return ""
        return "\n\n".join(sections) + "\n"

    def write(self, snapshot: ZoneSnapshot, stream: TextIO) -> None:
        stream.write(self.serialize(snapshot))

    # =========================================================================
    # Providers
    # =========================================================================

    def _bind_providers(self, providers: Tuple[ProviderSnapshot, ...]) -> List[_Binding]:
        names = _NameAllocator()
        bindings = []
        for provider in providers:
            if provider.kind == REGISTRAR:
                prefix, constructor = "REG", "NewRegistrar"
            else:
                prefix, constructor = "DSP", "NewDnsProvider"
            variable = names.allocate(prefix, provider.name)
            self._variables[id(provider)] = variable

            args = [quote_string(provider.name)]
            if provider.type != "-" or provider.meta is not None:
                args.append(quote_string(provider.type))
            if provider.meta is not None:
                args.append(render_value(provider.meta, provider.span))
            bindings.append(_Binding(variable, f"var {variable} = {constructor}({', '.join(args)});"))
        return bindings

    def _variable(self, provider: ProviderSnapshot) -> str:
        return self._variables[id(provider)]

    # =========================================================================
    # Domains
    # =========================================================================

    def _render_domain(self, domain: DomainSnapshot) -> str:
        head = [quote_string(domain.name)]
        if domain.registrar is not None:
            head.append(self._variable(domain.registrar))
        for use in domain.dns_providers:
            head.append(self._render_provider_use(use, domain.span))
        if domain.modifiers:
            head.append(render_value(domain.modifiers, domain.span))

        if not domain.records:
            return f"D({', '.join(head)});"

        lines = [f"D({', '.join(head)},"]
        records = [self.indent + self._render_record(record) for record in domain.records]
        lines.append(",\n".join(records))
        lines.append(");")
        return "\n".join(lines)

    def _render_provider_use(self, use: ProviderUseSnapshot, span: Optional[SourceSpan]) -> str:
        args = [self._variable(use.provider)]
        if use.nameserver_count is not None:
            args.append(render_value(use.nameserver_count, span))
        return f"DnsProvider({', '.join(args)})"

    def _render_record(self, record: RecordSnapshot) -> str:
        args = [render_value(value, record.span) for value in record.fields]
        if record.modifiers:
            args.append(render_value(record.modifiers, record.span))
        return f"{record.rtype}({', '.join(args)})"


def serialize(snapshot: ZoneSnapshot, indent: int = 4, header: bool = True) -> str:
    """
    Render a snapshot as dnscontrol JavaScript.

    Identical snapshots always produce byte-identical text.

    Raises:
        SerializationError: For non-finite numbers or integers beyond 2**53
    """
    return Serializer(indent=indent, header=header).serialize(snapshot)
