"""Tests for per-class binding slot allocation."""

import pytest

from salc.errors import SlotCollisionError
from salc.analysis.binding_allocator import (
    CONSTANT_BUFFER, SlotRequest, allocate_slots, assign_bindings, relocate_program,
)
from salc.analysis.namespace import NamespaceTable, resolve_imports
from salc.analysis.semantic import build_model
from salc.parser.ast_nodes import Module
from salc.parser.tree_builder import parse_sal


def _model(text, name="main"):
    table = NamespaceTable()
    module = Module(name, "pixel", parse_sal(text, name))
    table.register(module)
    ns = table.freeze()
    model = build_model(module, ns, resolve_imports(module, ns))
    assign_bindings(model)
    return model


def _program(**files):
    table = NamespaceTable()
    modules = [Module(name, "pixel", parse_sal(text, name)) for name, text in files.items()]
    for module in modules:
        table.register(module)
    ns = table.freeze()
    models = []
    for module in modules:
        model = build_model(module, ns, resolve_imports(module, ns))
        assign_bindings(model)
        models.append(model)
    relocate_program(models)
    return {m.file: m for m in models}


class TestAllocateSlots:
    def test_sequential(self):
        reqs = [SlotRequest(n, None, i) for i, n in enumerate("abc")]
        assert allocate_slots(reqs) == {"a": 0, "b": 1, "c": 2}

    def test_explicit_reserved_first(self):
        reqs = [
            SlotRequest("a", None, 0),
            SlotRequest("b", 0, 1),
            SlotRequest("c", None, 2),
        ]
        assert allocate_slots(reqs) == {"a": 1, "b": 0, "c": 2}

    def test_gaps_filled_in_declaration_order(self):
        reqs = [
            SlotRequest("a", 2, 0),
            SlotRequest("b", None, 1),
            SlotRequest("c", None, 2),
            SlotRequest("d", None, 3),
        ]
        assert allocate_slots(reqs) == {"a": 2, "b": 0, "c": 1, "d": 3}

    def test_declaration_index_not_list_order(self):
        reqs = [SlotRequest("late", None, 5), SlotRequest("early", None, 1)]
        assert allocate_slots(reqs) == {"early": 0, "late": 1}

    def test_collision(self):
        reqs = [SlotRequest("A", 1, 0, 3, 1), SlotRequest("B", 1, 1, 7, 1)]
        with pytest.raises(SlotCollisionError) as exc:
            allocate_slots(reqs, CONSTANT_BUFFER, "main")
        assert exc.value.slot == 1
        assert exc.value.names == ["A", "B"]
        assert exc.value.line == 7
        assert "'A'" in exc.value.message and "'B'" in exc.value.message

    def test_deterministic(self):
        reqs = [SlotRequest(f"r{i}", 3 if i == 4 else None, i) for i in range(8)]
        assert allocate_slots(reqs) == allocate_slots(list(reqs))

    def test_wide_request_takes_consecutive_slots(self):
        reqs = [SlotRequest("M", None, 0, width=4), SlotRequest("C", None, 1)]
        assert allocate_slots(reqs) == {"M": 0, "C": 4}

    def test_wide_request_skips_narrow_gap(self):
        reqs = [SlotRequest("P", 1, 0), SlotRequest("M", None, 1, width=2)]
        assert allocate_slots(reqs) == {"P": 1, "M": 2}

    def test_explicit_wide_overlap(self):
        reqs = [SlotRequest("M", 0, 0, width=4), SlotRequest("C", 2, 1)]
        with pytest.raises(SlotCollisionError) as exc:
            allocate_slots(reqs)
        assert exc.value.slot == 2
        assert exc.value.names == ["M", "C"]


class TestAssignBindings:
    def test_classes_numbered_independently(self):
        model = _model("""
        vformat struct Vertex { vec4f Color; vec3f Pos; }
        const struct A { float X; }
        const Sampler S;
        const Texture2D:vec4f T : S;
        output vec4f Color;
        """)
        assert [i.location for i in model.vertex_format.inputs] == [0, 1]
        assert model.buffer("A").binding == 0
        assert model.texture("T").binding == 0
        assert model.outputs[0].location == 0

    def test_explicit_buffer_slot(self):
        model = _model("""
        const struct A { float X; }
        const struct Lighting : Order(2) { uint Count; }
        const struct B { float X; }
        const struct C { float X; }
        """)
        slots = {cb.name: cb.binding for cb in model.constant_buffers}
        assert slots == {"A": 0, "Lighting": 2, "B": 1, "C": 3}

    def test_vertex_attribute_slots(self):
        model = _model("vformat struct Vertex { vec4f Color; vec3f Pos : ORDER_0; vec3f Normal; }")
        assert [i.location for i in model.vertex_format.inputs] == [1, 0, 2]

    def test_buffer_collision(self):
        with pytest.raises(SlotCollisionError) as exc:
            _model("const struct A : ORDER_1 { float X; }\nconst struct B : ORDER_1 { float X; }")
        assert set(exc.value.names) == {"A", "B"}

    def test_output_collision(self):
        with pytest.raises(SlotCollisionError):
            _model("output vec4f A : ORDER_0;\noutput vec4f B : Order(0);")

    def test_root_buffer_slot(self):
        model = _model("const struct A { float X; }\nconst float Time : ORDER_0;")
        assert model.buffer("Root").binding == 0
        assert model.buffer("A").binding == 1

    def test_matrix_attribute_locations(self):
        model = _model("vformat struct V { mat4f Model; vec4f Color; }")
        assert [i.location for i in model.vertex_format.inputs] == [0, 4]

    def test_double_vector_attribute_locations(self):
        model = _model("vformat struct V { vec4d P; vec3d N; float W; }")
        assert [i.location for i in model.vertex_format.inputs] == [0, 2, 4]

    def test_matrix_attribute_overlap(self):
        with pytest.raises(SlotCollisionError):
            _model("vformat struct V { mat4f Model : ORDER_0; vec4f Color : ORDER_2; }")


COMMON = "const struct Camera { mat4f ViewProj; }\nconst struct Fog { float Density; }"


class TestRelocateProgram:
    def test_shared_buffer_same_binding(self):
        models = _program(
            Common=COMMON,
            Vertex="const struct Skin { mat4f Bones; }\nuse Common::Camera;",
            Pixel="use Common::Camera;",
        )
        camera = {name: m.buffer("Camera").binding for name, m in models.items()}
        assert len(set(camera.values())) == 1
        assert models["Vertex"].buffer("Skin").binding != camera["Vertex"]

    def test_first_encounter_order(self):
        models = _program(
            Common=COMMON,
            Vertex="const struct Skin { mat4f Bones; }\nuse Common::Camera;",
        )
        assert models["Common"].buffer("Camera").binding == 0
        assert models["Common"].buffer("Fog").binding == 1
        assert models["Vertex"].buffer("Skin").binding == 2
        assert models["Vertex"].buffer("Camera").binding == 0

    def test_explicit_order_kept(self):
        models = _program(
            A="const struct Camera : ORDER_3 { mat4f ViewProj; }",
            B="use A::Camera;\nconst struct Local { float X; }",
        )
        assert models["B"].buffer("Camera").binding == 3
        assert models["B"].buffer("Local").binding == 0

    def test_textures_shared(self):
        models = _program(
            A="const Sampler S;\nconst Texture2D:vec4f Albedo : S;",
            B="const Sampler S;\nconst Texture2D:vec4f Shadow : S;\nuse A::Albedo;",
        )
        assert models["B"].texture("Albedo").binding == models["A"].texture("Albedo").binding == 0
        assert models["B"].texture("Shadow").binding == 1

    def test_same_name_different_orders(self):
        with pytest.raises(SlotCollisionError) as exc:
            _program(
                A="const struct Camera : ORDER_0 { mat4f ViewProj; }",
                B="const struct Camera : ORDER_1 { mat4f ViewProj; }",
            )
        assert exc.value.file == "B"
        assert "'A' binds it to slot 0" in exc.value.message

    def test_different_names_same_order(self):
        with pytest.raises(SlotCollisionError) as exc:
            _program(
                A="const struct Camera : ORDER_0 { mat4f ViewProj; }",
                B="const struct Skin : ORDER_0 { mat4f Bones; }",
            )
        assert exc.value.file == "B"
        assert exc.value.names == ["Camera", "Skin"]
