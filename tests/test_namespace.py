"""Tests for the two-phase namespace table and import resolution."""

import pytest

from salc.errors import CyclicImportError, UnresolvedImportError
from salc.parser.ast_nodes import Module
from salc.parser.tree_builder import parse_sal
from salc.analysis.namespace import NamespaceTable, resolve_imports


def _module(name, text):
    return Module(name, "pixel", parse_sal(text, name))


def _freeze(**files):
    table = NamespaceTable()
    modules = {}
    for name, text in files.items():
        modules[name] = _module(name, text)
        table.register(modules[name])
    return table.freeze(), modules


class TestRegistration:
    def test_exports(self):
        ns, _ = _freeze(A="const struct Light { vec3f Color; } const Sampler S; output vec4f C;")
        assert ns.lookup("A", "Light").kind == "constant_buffer"
        assert ns.lookup("A", "S").kind == "constant"
        assert ns.lookup("A", "C").kind == "output"
        assert ns.lookup("A", "Missing") is None
        assert ns.lookup("Z", "Light") is None

    def test_uses_not_reexported(self):
        ns, _ = _freeze(A="const struct Light { vec3f Color; }", B="use A::Light;")
        assert ns.lookup("B", "Light") is None
        assert ns.resolve_name("B", "Light").file == "A"

    def test_resolve_name_alias(self):
        ns, _ = _freeze(A="const struct Light { vec3f Color; }", B="use A::Light as Sun;")
        assert ns.resolve_name("B", "Sun").name == "Light"
        assert ns.resolve_name("B", "Light") is None

    def test_frozen_rejects_registration(self):
        table = NamespaceTable()
        table.register(_module("A", "const float X;"))
        table.freeze()
        with pytest.raises(RuntimeError):
            table.register(_module("B", "const float Y;"))

    def test_frozen_is_read_only(self):
        ns, _ = _freeze(A="use B::X;", B="const float X;")
        with pytest.raises(TypeError):
            ns.import_graph["A"] = frozenset()


class TestResolution:
    def test_resolves(self):
        ns, mods = _freeze(A="const struct Light { vec3f Color; }", B="use A::Light;")
        (resolved,) = resolve_imports(mods["B"], ns)
        assert resolved.symbol.file == "A"
        assert resolved.use.member == "Light"

    def test_missing_member(self):
        ns, mods = _freeze(A="const float X;", B="\nuse A::Y;")
        with pytest.raises(UnresolvedImportError) as exc:
            resolve_imports(mods["B"], ns)
        assert (exc.value.namespace, exc.value.member) == ("A", "Y")
        assert exc.value.line == 2

    def test_missing_file(self):
        ns, mods = _freeze(B="use Nowhere::Y;")
        with pytest.raises(UnresolvedImportError):
            resolve_imports(mods["B"], ns)


class TestCycles:
    def test_direct_cycle(self):
        ns, mods = _freeze(A="use B::Y; const float X;", B="use A::X; const float Y;")
        with pytest.raises(CyclicImportError) as exc:
            resolve_imports(mods["A"], ns)
        assert exc.value.cycle == ["A", "B", "A"]
        with pytest.raises(CyclicImportError) as exc:
            resolve_imports(mods["B"], ns)
        assert exc.value.cycle == ["B", "A", "B"]

    def test_self_import(self):
        ns, mods = _freeze(A="use A::X; const float X;")
        with pytest.raises(CyclicImportError) as exc:
            resolve_imports(mods["A"], ns)
        assert exc.value.cycle == ["A", "A"]

    def test_dependent_of_cycle_fails(self):
        ns, mods = _freeze(
            A="use B::Y; const float X;", B="use A::X; const float Y;", C="use A::X;",
        )
        with pytest.raises(CyclicImportError) as exc:
            resolve_imports(mods["C"], ns)
        assert exc.value.cycle[0] == "C"

    def test_unrelated_file_unaffected(self):
        ns, mods = _freeze(
            A="use B::Y; const float X;", B="use A::X; const float Y;",
            D="const float Z;", E="use D::Z;",
        )
        assert ns.dependency_cycle("E") is None
        assert len(resolve_imports(mods["E"], ns)) == 1

    def test_diamond_is_not_a_cycle(self):
        ns, _ = _freeze(
            A="const float X;", B="use A::X;", C="use A::X;", D="use B::X; use C::X;",
        )
        assert ns.dependency_cycle("D") is None
