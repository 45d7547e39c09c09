"""
Directive registry: the closed table of functions scripts use to build zones.

Every directive mirrors a dnscontrol API function with the same name and
positional argument order. An entry declares its argument shape and a
builder; dispatch is a dictionary lookup, and builders are the only code
that mutates the ZoneDocument.

Argument kinds used in shapes:
    string, number, boolean, table, list, record, domain, provider,
    provider-binding, modifier, function, nil
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import structlog

from .dsl.errors import (
    error_argument_type,
    error_duplicate_provider,
    error_unresolved_reference,
)
from .dsl.runtime.values import LuaCallable, LuaTable, kind_of
from .dsl.tokens import SourceSpan
from .model import (
    DNS, DOMAIN_PARTS, REGISTRAR, Deferred, Domain, Modifier, Provider, ProviderUse,
    Record, Reference, ZoneDocument,
)

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ArgSpec:
    """Accepted kinds for one argument position."""
    name: str
    kinds: Tuple[str, ...]
    optional: bool = False

    def describe(self) -> str:
        return " or ".join(self.kinds)

    def signature(self) -> str:
        text = f"{self.name}: {'|'.join(self.kinds)}"
        return f"[{text}]" if self.optional else text


@dataclass(eq=False)
class Directive(LuaCallable):
    """One registry entry."""
    name: str
    params: Tuple[ArgSpec, ...]
    builder: Callable[["DirectiveCall"], Any]
    summary: str = ""
    rest: Optional[ArgSpec] = None      # shape of trailing variadic arguments
    aliases: Tuple[str, ...] = ()
    receiver: bool = False              # x:NAME(...) applies NAME to record/domain x
    value_form: bool = False            # may be used bare, as NO_PURGE is

    def signature(self) -> str:
        parts = [p.signature() for p in self.params]
        if self.rest is not None:
            parts.append(f"{self.rest.name}: {'|'.join(self.rest.kinds)}...")
        return f"{self.name}({', '.join(parts)})"

    def __repr__(self) -> str:
        return f"Directive({self.name})"


@dataclass
class DirectiveCall:
    """Everything a builder may look at."""
    directive: Directive
    args: List[Any]
    span: SourceSpan
    document: ZoneDocument
    interpreter: Any = None
    target: Union[Record, Domain, None] = None


STRING = ("string",)
NUMBER = ("number",)
MODIFIER_KINDS = ("modifier", "table")
DOMAIN_ITEM_KINDS = ("record", "modifier", "table", "list", "provider", "provider-binding")

# Positional fields per record type, in dnscontrol's argument order
RECORD_SHAPES: Dict[str, Tuple[ArgSpec, ...]] = {
    "A": (ArgSpec("name", STRING), ArgSpec("address", STRING)),
    "AAAA": (ArgSpec("name", STRING), ArgSpec("address", STRING)),
    "ALIAS": (ArgSpec("name", STRING), ArgSpec("target", STRING)),
    "CAA": (ArgSpec("name", STRING), ArgSpec("tag", STRING), ArgSpec("value", STRING)),
    "CNAME": (ArgSpec("name", STRING), ArgSpec("target", STRING)),
    "MX": (ArgSpec("name", STRING), ArgSpec("priority", NUMBER), ArgSpec("target", STRING)),
    "NS": (ArgSpec("name", STRING), ArgSpec("target", STRING)),
    "PTR": (ArgSpec("name", STRING), ArgSpec("target", STRING)),
    "SRV": (
        ArgSpec("name", STRING), ArgSpec("priority", NUMBER), ArgSpec("weight", NUMBER),
        ArgSpec("port", NUMBER), ArgSpec("target", STRING),
    ),
    "TXT": (ArgSpec("name", STRING), ArgSpec("text", ("string", "list"))),
}


def check_kind(directive: str, kinds: Tuple[str, ...], value: Any, index: int,
               span: SourceSpan, optional: bool = False) -> None:
    """Raise E202 unless the value's kind is one of kinds."""
    kind = kind_of(value)
    if kind in kinds:
        return
    if value is None and optional:
        return
    if kind == "table" and "list" in kinds and len(value) == 0:
        # {} reads as an empty table; a list argument needs at least one element
        raise error_argument_type(directive, index, "non-empty list", "empty table", span)
    raise error_argument_type(directive, index, " or ".join(kinds), kind, span)


def check_modifier_table(table: LuaTable, directive: str, index: int, span: SourceSpan) -> None:
    """A structured modifier literal must be keyed by strings."""
    for key, _ in table.items():
        if not isinstance(key, str):
            raise error_argument_type(
                directive, index, "table with string keys",
                f"table with {kind_of(key)} key", span,
            )


def attach_domain_item(domain: Domain, item: Any, index: int, span: SourceSpan,
                       document: ZoneDocument, directive: str = "D") -> None:
    """Apply one D argument to a domain; lists are flattened in order."""
    if item is None:
        return
    if isinstance(item, Reference):
        positions = {part: len(getattr(domain, part)) for part in DOMAIN_PARTS}
        domain.deferred.append(Deferred(item, index, positions))
        return
    if isinstance(item, Record):
        domain.add_record(item, span)
    elif isinstance(item, Modifier):
        domain.add_modifier(item, span)
    elif isinstance(item, LuaTable):
        if item.is_sequence():
            for element in item.sequence():
                attach_domain_item(domain, element, index, span, document, directive)
        else:
            check_modifier_table(item, directive, index, span)
            domain.add_modifier(item, span)
    elif isinstance(item, Provider):
        if item.kind != REGISTRAR:
            raise error_argument_type(directive, index, "provider-binding", "dns provider", span)
        if domain.registrar is not None:
            raise error_argument_type(directive, index, "a single registrar", "second registrar", span)
        domain.registrar = item
    elif isinstance(item, ProviderUse):
        domain.dns_providers.append(item)
    else:
        raise error_argument_type(
            directive, index, " or ".join(DOMAIN_ITEM_KINDS), kind_of(item), span
        )


def _tables_in(values: List[Any]):
    for value in values:
        if isinstance(value, LuaTable):
            yield value
        elif isinstance(value, Modifier):
            yield from _tables_in(list(value.entries.values()))


def seal_domain_tables(domain: Domain) -> None:
    """
    Close every script table a declared domain holds.

    Modifier tables and TXT text lists are read at finalize time, so once
    the domain is declared they reject assignment the same way the domain
    and its records do.
    """
    for target in [domain] + list(domain.records):
        reason = f"closed when its domain was declared at {target.closed_at()}"
        what = target.describe()
        for table in _tables_in(target.modifier_sources):
            table.close(what, reason)
        if isinstance(target, Record):
            for table in _tables_in(target.fields):
                table.close(what, reason)


class DirectiveRegistry:
    """
    Registry of all directives.

    Usage:
        registry = get_directive_registry()
        directive = registry.lookup("A")
        record = registry.invoke(directive, ["www", "1.2.3.4"], span, document)
    """

    def __init__(self):
        self._directives: Dict[str, Directive] = {}
        self._aliases: Dict[str, str] = {}
        self._register_all()

    def register(self, directive: Directive) -> None:
        self._directives[directive.name] = directive
        for alias in directive.aliases:
            self._aliases[alias] = directive.name

    def lookup(self, name: str) -> Optional[Directive]:
        """Find a directive by name or alias."""
        directive = self._directives.get(name)
        if directive is None and name in self._aliases:
            directive = self._directives[self._aliases[name]]
        return directive

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def directives(self) -> List[Directive]:
        return list(self._directives.values())

    def describe(self) -> List[Dict[str, Any]]:
        """Name, aliases, shape and summary of every directive."""
        return [
            {
                "name": d.name,
                "aliases": list(d.aliases),
                "signature": d.signature(),
                "summary": d.summary,
            }
            for d in self._directives.values()
        ]

    # =========================================================================
    # Dispatch
    # =========================================================================

    def invoke(self, directive: Directive, args: List[Any], span: SourceSpan,
               document: ZoneDocument, interpreter: Any = None) -> Any:
        """Validate arguments against the directive's shape, then build."""
        target, values = self.validate(directive, args, span, document)
        call = DirectiveCall(directive, values, span, document, interpreter, target)
        return directive.builder(call)

    def validate(self, directive: Directive, args: List[Any], span: SourceSpan,
                 document: ZoneDocument) -> Tuple[Union[Record, Domain, None], List[Any]]:
        """
        Check arity and per-argument kinds.

        Returns the receiver (for x:TTL(60) style calls) and the remaining
        arguments. References are accepted anywhere and queued on the
        document so the finalizer can re-check them once bound.
        """
        values = [self._coerce(value, span, document) for value in args]
        target = None
        offset = 0
        if directive.receiver and values and isinstance(values[0], (Record, Domain)):
            target = values[0]
            values = values[1:]
            offset = 1

        for i, spec in enumerate(directive.params):
            value = values[i] if i < len(values) else None
            self._check(directive, spec, value, i + 1 + offset, span, document)

        extra = values[len(directive.params):]
        if extra and directive.rest is None:
            index = len(directive.params) + 1 + offset
            raise error_argument_type(
                directive.name, index, "no further arguments", kind_of(extra[0]), span
            )
        for j, value in enumerate(extra):
            index = len(directive.params) + j + 1 + offset
            self._check(directive, directive.rest, value, index, span, document)

        return target, values

    def _coerce(self, value: Any, span: SourceSpan, document: ZoneDocument) -> Any:
        # NO_PURGE written without parentheses
        if isinstance(value, Directive) and value.value_form:
            return self.invoke(value, [], span, document)
        return value

    def _check(self, directive: Directive, spec: ArgSpec, value: Any, index: int,
               span: SourceSpan, document: ZoneDocument) -> None:
        if isinstance(value, Reference):
            document.pending.append((value, directive.name, index, spec.kinds))
            return
        check_kind(directive.name, spec.kinds, value, index, span, spec.optional)

    # =========================================================================
    # Registration
    # =========================================================================

    def _register_all(self) -> None:
        self._register_domain()
        self._register_records()
        self._register_modifiers()
        self._register_providers()
        self._register_include()

    def _register_domain(self) -> None:

        def _build_domain(call: DirectiveCall) -> Domain:
            name = call.args[0]
            domain = Domain(name=name, span=call.span)
            for index, item in enumerate(call.args[1:], start=2):
                attach_domain_item(domain, item, index, call.span, call.document)
            domain.close()
            seal_domain_tables(domain)
            call.document.add_domain(domain)
            call.document.record_effect("D", _subject(name), call.span)
            log.debug("domain.declared", domain=_subject(name), records=len(domain.records))
            return domain

        self.register(Directive(
            name="D",
            params=(ArgSpec("name", STRING),),
            rest=ArgSpec("items", DOMAIN_ITEM_KINDS, optional=True),
            builder=_build_domain,
            aliases=("domain",),
            summary="Declare a domain with its registrar, DNS providers, modifiers and records.",
        ))

    def _register_records(self) -> None:
        for rtype, shape in RECORD_SHAPES.items():
            self.register(Directive(
                name=rtype,
                params=shape,
                rest=ArgSpec("modifiers", MODIFIER_KINDS, optional=True),
                builder=self._record_builder(rtype, len(shape)),
                summary=f"{rtype} record constructor.",
            ))

    @staticmethod
    def _record_builder(rtype: str, field_count: int) -> Callable[[DirectiveCall], Record]:
        def _build_record(call: DirectiveCall) -> Record:
            fields = call.args[:field_count]
            if rtype == "TXT" and isinstance(fields[1], LuaTable):
                for element in fields[1].sequence():
                    if not isinstance(element, (str, Reference)):
                        raise error_argument_type(
                            rtype, 2, "list of strings", f"list containing {kind_of(element)}", call.span
                        )
            record = Record(rtype=rtype, fields=list(fields), span=call.span)
            for index, source in enumerate(call.args[field_count:], start=field_count + 1):
                if source is None:
                    continue
                if isinstance(source, LuaTable):
                    check_modifier_table(source, rtype, index, call.span)
                record.add_modifier(source, call.span)
            call.document.record_effect(rtype, _subject(fields[0]), call.span)
            return record
        return _build_record

    def _register_modifiers(self) -> None:

        def _modifier_builder(key: str, value_of: Callable[[List[Any]], Any]):
            def _build_modifier(call: DirectiveCall) -> Any:
                modifier = Modifier({key: value_of(call.args)}, call.directive.name, call.span)
                if call.target is None:
                    return modifier
                call.target.add_modifier(modifier, call.span)
                call.document.record_effect(
                    call.directive.name, f"{key} on {call.target.describe()}", call.span
                )
                return call.target
            return _build_modifier

        modifiers = [
            ("TTL", ("ttl",), "ttl", (ArgSpec("seconds", NUMBER),), False,
             "Record or domain time-to-live: {ttl: n}."),
            ("DefaultTTL", ("default_ttl",), "default_ttl", (ArgSpec("seconds", NUMBER),), False,
             "Default TTL for the domain's records: {default_ttl: n}."),
            ("NO_PURGE", (), "no_purge", (), True,
             "Keep records the configuration does not mention: {no_purge: true}."),
            ("Meta", ("meta",), "meta", (ArgSpec("meta", ("table",)),), False,
             "Opaque provider metadata: {meta: {...}}."),
        ]

        for name, aliases, key, params, bare, summary in modifiers:
            if params:
                value_of = lambda args: args[0]
            else:
                value_of = lambda args: True
            self.register(Directive(
                name=name,
                params=params,
                builder=_modifier_builder(key, value_of),
                aliases=aliases,
                receiver=True,
                value_form=bare,
                summary=summary,
            ))

    def _register_providers(self) -> None:

        def _provider_builder(kind: str, label: str):
            def _build_provider(call: DirectiveCall) -> Provider:
                name = call.args[0]
                ptype = call.args[1] if len(call.args) > 1 else None
                meta = call.args[2] if len(call.args) > 2 else None
                if isinstance(ptype, LuaTable):
                    if meta is not None:
                        raise error_argument_type(call.directive.name, 2, "string", "table", call.span)
                    ptype, meta = None, ptype
                if isinstance(name, str):
                    existing = call.document.find_provider(kind, name)
                    if existing is not None:
                        raise error_duplicate_provider(label, name, existing.span, call.span)
                provider = Provider(kind=kind, name=name, type="-" if ptype is None else ptype,
                                    meta=meta, span=call.span)
                call.document.add_provider(provider)
                call.document.record_effect(call.directive.name, _subject(name), call.span)
                return provider
            return _build_provider

        provider_shape = (
            ArgSpec("name", STRING),
            ArgSpec("type", ("string", "table"), optional=True),
            ArgSpec("meta", ("table",), optional=True),
        )

        self.register(Directive(
            name="NewRegistrar",
            params=provider_shape,
            builder=_provider_builder(REGISTRAR, "registrar"),
            aliases=("registrar",),
            summary="Register a registrar; type '-' defers to the credentials file.",
        ))
        self.register(Directive(
            name="NewDnsProvider",
            params=provider_shape,
            builder=_provider_builder(DNS, "DNS provider"),
            aliases=("dns_provider",),
            summary="Register a DNS provider; type '-' defers to the credentials file.",
        ))

        def _build_provider_use(call: DirectiveCall) -> ProviderUse:
            provider = call.args[0]
            if isinstance(provider, Provider) and provider.kind != DNS:
                raise error_argument_type("DnsProvider", 1, "dns provider", "registrar provider", call.span)
            count = call.args[1] if len(call.args) > 1 else None
            return ProviderUse(provider=provider, nameserver_count=count, span=call.span)

        self.register(Directive(
            name="DnsProvider",
            params=(ArgSpec("provider", ("provider",)), ArgSpec("nameserver_count", NUMBER, optional=True)),
            builder=_build_provider_use,
            aliases=("use_provider",),
            summary="Bind a DNS provider to a domain, optionally limiting its nameservers.",
        ))

    def _register_include(self) -> None:

        def _build_include(call: DirectiveCall) -> Any:
            name = call.args[0]
            if isinstance(name, Reference):
                raise error_unresolved_reference(name.name, name.span)
            return call.interpreter.include(name, call.span)

        self.register(Directive(
            name="include",
            params=(ArgSpec("name", STRING),),
            builder=_build_include,
            aliases=("require",),
            summary="Evaluate another source file in the same global environment.",
        ))


def _subject(value: Any) -> str:
    if isinstance(value, Reference):
        return value.name
    return str(value)


# Global singleton registry
_registry: Optional[DirectiveRegistry] = None


def get_directive_registry() -> DirectiveRegistry:
    """Get the global directive registry."""
    global _registry
    if _registry is None:
        _registry = DirectiveRegistry()
    return _registry
