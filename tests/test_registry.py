"""
Tests for the directive registry and the document it builds.
"""

import pytest

from zonescript.dsl.errors import (
    ArgumentTypeError, DuplicateProvider, ImmutableTarget,
)
from zonescript.dsl.tokens import point_span
from zonescript.model import DNS, REGISTRAR, Domain, Modifier, Record, ZoneDocument
from zonescript.registry import DirectiveRegistry, get_directive_registry


class TestLookup:
    """Registry contents and aliases."""

    def test_singleton(self):
        """get_directive_registry returns one shared instance."""
        assert get_directive_registry() is get_directive_registry()

    def test_aliases(self):
        """Lowercase aliases resolve to the same directive."""
        registry = DirectiveRegistry()
        assert registry.lookup("domain") is registry.lookup("D")
        assert registry.lookup("ttl") is registry.lookup("TTL")
        assert registry.lookup("require") is registry.lookup("include")
        assert "NewRegistrar" in registry
        assert "bogus" not in registry

    def test_record_types(self):
        """Every record type has a constructor."""
        registry = DirectiveRegistry()
        for rtype in ("A", "AAAA", "ALIAS", "CAA", "CNAME", "MX", "NS", "PTR", "SRV", "TXT"):
            assert registry.lookup(rtype) is not None

    def test_describe(self):
        """describe() lists signatures and aliases."""
        entries = {e["name"]: e for e in DirectiveRegistry().describe()}
        assert entries["D"]["aliases"] == ["domain"]
        assert entries["D"]["signature"].startswith("D(name: string")
        assert entries["MX"]["signature"].startswith("MX(name: string, priority: number, target: string")
        assert entries["DnsProvider"]["signature"] == (
            "DnsProvider(provider: provider, [nameserver_count: number])"
        )

    def test_direct_invoke(self):
        """Directives can be invoked without a script."""
        registry = DirectiveRegistry()
        document = ZoneDocument()
        record = registry.invoke(registry.lookup("A"), ["www", "1.2.3.4"], point_span(), document)
        assert isinstance(record, Record)
        assert record.fields == ["www", "1.2.3.4"]
        assert [e.action for e in document.effects] == ["A"]


class TestArgumentShapes:
    """Arity and kind checking."""

    def test_wrong_kind(self, run_lua):
        """A number where a string belongs."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('A("www", 5)')
        err = exc.value
        assert err.diagnostic.code == "E202"
        assert err.diagnostic.message == "A: argument 2 expected string, received number"
        assert (err.directive, err.index, err.expected, err.received) == ("A", 2, "string", "number")

    def test_missing_argument(self, run_lua):
        """A missing required argument is received as nil."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('A("www")')
        assert exc.value.diagnostic.message == "A: argument 2 expected string, received nil"

    def test_too_many_arguments(self, run_lua):
        """Directives without a rest shape reject extras."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua("TTL(1, 2)")
        assert exc.value.diagnostic.message == "TTL: argument 2 expected no further arguments, received number"

    def test_record_modifier_kinds(self, run_lua):
        """Record modifiers must be modifiers or keyed tables."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('NS("@", "ns1.example.com.", 5)')
        assert exc.value.diagnostic.message == "NS: argument 3 expected modifier or table, received number"

    def test_modifier_table_needs_string_keys(self, run_lua):
        """A keyed table with numeric keys is not a modifier."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('A("www", "1.2.3.4", {[1] = 1, x = 2})')
        assert "table with string keys" in exc.value.diagnostic.message

    def test_list_is_not_a_record_modifier(self, run_lua):
        """{1} is a list."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('A("www", "1.2.3.4", {1})')
        assert exc.value.received == "list"

    def test_mx_and_srv_numbers(self, run_lua):
        """Numeric fields accept numbers."""
        ev = run_lua("""
            D("example.com",
              MX("@", 10, "mail.example.com."),
              SRV("_sip._tcp", 10, 60, 5060, "sip.example.com."))
        """)
        records = ev.document.domains[0].records
        assert records[0].fields == ["@", 10, "mail.example.com."]
        assert records[1].fields[3] == 5060

    def test_txt_list(self, run_lua):
        """TXT accepts a string or a list of strings."""
        ev = run_lua('D("example.com", TXT("@", {"a", "b"}), TXT("x", "single"))')
        assert ev.document.domains[0].records[0].fields[1].sequence() == ["a", "b"]
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('TXT("@", {"a", 1})')
        assert exc.value.expected == "list of strings"

    def test_txt_empty_list(self, run_lua):
        """{} is not a usable TXT value; the error says why."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('TXT("@", {})')
        err = exc.value
        assert (err.expected, err.received) == ("non-empty list", "empty table")
        assert err.diagnostic.message == "TXT: argument 2 expected non-empty list, received empty table"

    def test_txt_keyed_table(self, run_lua):
        """A keyed table is still reported as a table."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('TXT("@", {a = "x"})')
        assert exc.value.received == "table"

    def test_error_location(self):
        """The diagnostic points at the directive call."""
        from zonescript.dsl.runtime import evaluate
        with pytest.raises(ArgumentTypeError) as exc:
            evaluate('\nD("example.com",\n  A("www", true))', "zones.lua")
        assert str(exc.value.span.start) == "zones.lua:3:3"


class TestDomains:
    """D() and the items it accepts."""

    def test_items(self, run_lua):
        """Registrar, provider bindings, modifiers and records."""
        ev = run_lua("""
            REG = NewRegistrar("none")
            DSP = NewDnsProvider("cloudflare", "CLOUDFLAREAPI")
            D("example.com", REG, DnsProvider(DSP, 2), TTL(300), NO_PURGE,
              A("@", "1.2.3.4"), CNAME("www", "@"))
        """)
        domain = ev.document.domains[0]
        assert domain.name == "example.com"
        assert domain.registrar.kind == REGISTRAR
        assert domain.dns_providers[0].provider.kind == DNS
        assert domain.dns_providers[0].nameserver_count == 2
        assert [m.directive for m in domain.modifier_sources] == ["TTL", "NO_PURGE"]
        assert [r.rtype for r in domain.records] == ["A", "CNAME"]
        assert domain.closed

    def test_lists_flatten(self, run_lua):
        """Nested lists of items are applied in order."""
        ev = run_lua('D("x.com", {A("a", "1.1.1.1"), {A("b", "2.2.2.2")}}, A("c", "3.3.3.3"))')
        assert [r.fields[0] for r in ev.document.domains[0].records] == ["a", "b", "c"]

    def test_nil_items_ignored(self, run_lua):
        """nil items, such as a failed conditional, are skipped."""
        ev = run_lua('local extra = false and A("x", "1.1.1.1") or nil\nD("x.com", extra, A("a", "1.1.1.1"))')
        assert len(ev.document.domains[0].records) == 1

    def test_dns_provider_as_registrar(self, run_lua):
        """A bare DNS provider needs DnsProvider()."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('D("x.com", NewDnsProvider("cf"))')
        assert exc.value.diagnostic.message == "D: argument 2 expected provider-binding, received dns provider"

    def test_second_registrar(self, run_lua):
        """A domain has at most one registrar."""
        with pytest.raises(ArgumentTypeError):
            run_lua('R1 = NewRegistrar("a")\nR2 = NewRegistrar("b")\nD("x.com", R1, R2)')

    def test_registrar_in_dns_provider(self, run_lua):
        """DnsProvider() rejects registrars."""
        with pytest.raises(ArgumentTypeError) as exc:
            run_lua('DnsProvider(NewRegistrar("r"))')
        assert exc.value.expected == "dns provider"

    def test_alias_spelling(self, run_lua):
        """Lowercase aliases build the same nodes."""
        ev = run_lua('domain("x.com", registrar("r"), A("@", "1.1.1.1", ttl(60)))')
        domain = ev.document.domains[0]
        assert domain.registrar.name == "r"
        assert domain.records[0].modifier_sources[0].entries == {"ttl": 60}


class TestModifiers:
    """TTL, DefaultTTL, NO_PURGE and Meta."""

    def test_modifier_handles(self, run_lua):
        """Modifier builders return handles with one entry."""
        ev = run_lua('t = TTL(60)\nd = DefaultTTL(300)\nn = NO_PURGE()\nm = Meta({a = 1})')
        g = ev.globals
        assert isinstance(g["t"], Modifier) and g["t"].entries == {"ttl": 60}
        assert g["d"].entries == {"default_ttl": 300}
        assert g["n"].entries == {"no_purge": True}
        assert g["m"].entries["meta"].get("a") == 1

    def test_receiver_form(self, run_lua):
        """rec:TTL(60) modifies the record and returns it."""
        ev = run_lua('r = A("www", "1.2.3.4"):TTL(60)')
        record = ev.globals["r"]
        assert isinstance(record, Record)
        assert record.modifier_sources[0].entries == {"ttl": 60}
        assert ev.effects[-1].action == "TTL"

    def test_closed_record(self, run_lua):
        """Records are closed once their domain is declared."""
        with pytest.raises(ImmutableTarget) as exc:
            run_lua('r = A("www", "1.2.3.4")\nD("x.com", r)\nr:TTL(60)')
        assert exc.value.diagnostic.code == "E203"
        assert exc.value.diagnostic.message.startswith("cannot modify A record 'www': closed when")

    def test_closed_domain(self, run_lua):
        """A declared domain cannot gain modifiers."""
        with pytest.raises(ImmutableTarget):
            run_lua('d = D("x.com")\nd:TTL(60)')

    def test_record_owned_once(self, run_lua):
        """A record belongs to a single domain."""
        with pytest.raises(ImmutableTarget) as exc:
            run_lua('r = A("www", "1.2.3.4")\nD("a.com", r)\nD("b.com", r)')
        assert "already owned by domain 'a.com'" in exc.value.diagnostic.message


class TestSealedTables:
    """Tables held by a declared domain reject assignment."""

    def test_record_modifier_table(self, run_lua):
        """Assigning into a record's modifier table after D is E203."""
        with pytest.raises(ImmutableTarget) as exc:
            run_lua('opts = {ttl = 60}\nD("x.com", A("www", "1.2.3.4", opts))\nopts.ttl = 120')
        diagnostic = exc.value.diagnostic
        assert diagnostic.code == "E203"
        assert diagnostic.message.startswith("cannot modify A record 'www': closed when its domain")
        assert diagnostic.span.start.line == 3

    def test_nested_table(self, run_lua):
        """Tables inside a sealed table are sealed too."""
        with pytest.raises(ImmutableTarget):
            run_lua('m = {meta = {a = 1}}\nD("x.com", A("www", "1.2.3.4", m))\nm.meta.b = 2')

    def test_domain_modifier_table(self, run_lua):
        """Domain-level tables name the domain."""
        with pytest.raises(ImmutableTarget) as exc:
            run_lua('opts = {default_ttl = 300}\nD("x.com", opts)\nopts.default_ttl = 60')
        assert "cannot modify domain 'x.com'" in exc.value.diagnostic.message

    def test_meta_handle_table(self, run_lua):
        """A table wrapped by Meta is sealed through the handle."""
        with pytest.raises(ImmutableTarget):
            run_lua('t = {a = 1}\nD("x.com", A("www", "1.2.3.4", Meta(t)))\nt.a = 2')

    def test_txt_text_list(self, run_lua):
        """TXT strings given as a list are sealed with the record."""
        with pytest.raises(ImmutableTarget):
            run_lua('parts = {"a", "b"}\nD("x.com", TXT("@", parts))\nparts[3] = "c"')

    def test_builtin_assignment(self, run_lua):
        """table.insert reports the same error."""
        with pytest.raises(ImmutableTarget) as exc:
            run_lua('parts = {"a"}\nD("x.com", TXT("@", parts))\ntable.insert(parts, "b")')
        assert exc.value.diagnostic.code == "E203"

    def test_filled_in_before_declaration(self, run_lua):
        """Assignment is fine until the domain is declared."""
        ev = run_lua('opts = {}\nr = A("www", "1.2.3.4", opts)\nopts.ttl = 60\nD("x.com", r)')
        assert ev.globals["opts"].get("ttl") == 60
        assert ev.globals["opts"].closed_by is not None

    def test_unattached_tables_stay_open(self, run_lua):
        """Tables that no declared domain holds are left alone."""
        ev = run_lua('opts = {ttl = 60}\nr = A("www", "1.2.3.4", opts)\nD("x.com")\nopts.ttl = 5')
        assert ev.globals["opts"].get("ttl") == 5


class TestProviders:
    """NewRegistrar and NewDnsProvider."""

    def test_defaults(self, run_lua):
        """Type defaults to '-'."""
        ev = run_lua('NewRegistrar("none")')
        provider = ev.document.providers[0]
        assert (provider.kind, provider.name, provider.type, provider.meta) == (REGISTRAR, "none", "-", None)

    def test_table_in_type_position(self, run_lua):
        """A table as the second argument is metadata."""
        ev = run_lua('NewDnsProvider("cf", {manage_redirects = true})')
        provider = ev.document.providers[0]
        assert provider.type == "-"
        assert provider.meta.get("manage_redirects") is True

    def test_duplicate_name(self, run_lua):
        """A name may be registered once per kind."""
        with pytest.raises(DuplicateProvider) as exc:
            run_lua('NewRegistrar("r")\nNewRegistrar("r")')
        assert exc.value.diagnostic.code == "E206"
        assert "registrar 'r' already registered at 1:1" in exc.value.diagnostic.message
        ev = run_lua('NewRegistrar("r")\nNewDnsProvider("r")')
        assert len(ev.document.providers) == 2


class TestEffects:
    """Ordered effect log."""

    def test_execution_order(self, run_lua):
        """Effects follow evaluation order, arguments before the call."""
        ev = run_lua('NewRegistrar("r")\nD("x.com", A("www", "1.2.3.4"), MX("@", 10, "mx."))')
        assert [(e.action, e.subject) for e in ev.effects] == [
            ("NewRegistrar", "r"), ("A", "www"), ("MX", "@"), ("D", "x.com"),
        ]

    def test_effect_locations(self, run_lua):
        """Each effect keeps its source location."""
        ev = run_lua('\nD("x.com")', "z.lua")
        assert str(ev.effects[0]) == "z.lua:2:1: D x.com"


class TestLateBinding:
    """References passed to directives."""

    def test_references_are_deferred(self, run_lua):
        """Unbound D items wait for the finalizer."""
        ev = run_lua('D("x.com", REG, A("@", "1.1.1.1"))\nREG = NewRegistrar("r")')
        domain = ev.document.domains[0]
        assert domain.registrar is None
        assert [d.reference.name for d in domain.deferred] == ["REG"]
        assert [(p[0].name, p[1], p[2]) for p in ev.document.pending] == [("REG", "D", 2)]

    def test_include_needs_bound_name(self, run_lua):
        """include() cannot wait for a later binding."""
        from zonescript.dsl.errors import UnresolvedReference
        with pytest.raises(UnresolvedReference):
            run_lua("include(LATER)")

    def test_domain_type(self):
        """Domain nodes describe themselves by name."""
        domain = Domain(name="x.com", span=point_span())
        assert domain.describe() == "domain 'x.com'"
