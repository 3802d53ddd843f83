"""Tests for the reflection descriptor and its JSON form."""

import json
import pytest

from salc.compiler import SourceFile, compile_batch, compile_source
from salc.codegen.reflection import (
    ReflectionDescriptor, emit_reflection_json, vk_format,
)
from salc.builtins.types import resolve_builtin


def _reflect(source: str, name: str = "shader") -> ReflectionDescriptor:
    result = compile_source(source, name)
    assert result.ok, result.diagnostics
    return result.reflection


MATERIAL = """#stage pixel
#sal
const struct Material {
    vec4f BaseColor;
    vec4f SpecularColor;
    float Specular : Pack;
    float UvMult : Pack;
}
const Sampler BaseSampler;
const Texture2D:vec4f BaseTexture : BaseSampler;
output vec4f FragColor;
pipeline Opaque {
    DepthTest = true;
    CullingMode = BackFace;
    Blend::Alpha = 0.5;
}
blendfunc Additive;
#sal
"""


class TestReflectionSchema:
    def test_header(self):
        refl = _reflect(MATERIAL, "material")
        assert refl.version == 1
        assert refl.source == "material"
        assert refl.stage == "pixel"

    def test_to_dict_keys(self):
        d = _reflect(MATERIAL).to_dict()
        assert list(d) == [
            "version", "source", "stage", "vertex_attributes", "vertex_stride",
            "constant_buffers", "textures", "outputs", "pipelines", "blendfuncs",
        ]

    def test_json_round_trip(self):
        text = emit_reflection_json(_reflect(MATERIAL))
        assert text.endswith("\n")
        assert json.loads(text)["constant_buffers"][0]["name"] == "Material"

    def test_immutable(self):
        refl = _reflect(MATERIAL)
        with pytest.raises(AttributeError):
            refl.stage = "vertex"


class TestMaterialScenario:
    def test_one_constant_buffer(self):
        refl = _reflect(MATERIAL)
        assert len(refl.constant_buffers) == 1
        cb = refl.constant_buffers[0]
        assert (cb.name, cb.binding, cb.size) == ("Material", 0, 48)
        assert [(m.name, m.offset) for m in cb.members] == [
            ("BaseColor", 0), ("SpecularColor", 16), ("Specular", 32), ("UvMult", 36),
        ]

    def test_packed_members_adjacent(self):
        members = _reflect(MATERIAL).constant_buffers[0].members
        specular, uv_mult = members[2], members[3]
        assert specular.offset + specular.size == uv_mult.offset

    def test_combined_sampler(self):
        (tex,) = _reflect(MATERIAL).textures
        assert (tex.name, tex.binding, tex.sampler, tex.type) == (
            "BaseTexture", 0, "BaseSampler", "Texture2D:vec4f",
        )

    def test_outputs(self):
        (out,) = _reflect(MATERIAL).outputs
        assert (out.name, out.location, out.type) == ("FragColor", 0, "vec4f")

    def test_state_blocks_verbatim(self):
        d = _reflect(MATERIAL).to_dict()
        assert d["pipelines"] == [{
            "name": "Opaque",
            "entries": {"DepthTest": True, "CullingMode": "BackFace", "Blend::Alpha": 0.5},
        }]
        assert d["blendfuncs"] == [{"name": "Additive", "entries": {}}]


class TestVertexScenario:
    def test_default_slots(self):
        refl = _reflect("#stage vertex\n#sal\nvformat struct Vertex { vec4f Color; vec3f Pos; vec3f Normal; }\n#sal\n")
        attrs = refl.vertex_attributes
        assert [(a.name, a.location, a.offset) for a in attrs] == [
            ("Vertex_Color", 0, 0), ("Vertex_Pos", 1, 16), ("Vertex_Normal", 2, 28),
        ]
        assert attrs[0].format == "R32G32B32A32_SFLOAT"
        assert refl.vertex_stride == 40

    def test_sorted_by_slot(self):
        refl = _reflect("#stage vertex\n#sal\nvformat struct V { vec4f A; vec4f B : ORDER_0; }\n#sal\n")
        assert [a.name for a in refl.vertex_attributes] == ["V_B", "V_A"]


class TestLightingScenario:
    COMMON = "#stage pixel\n#sal\nconst struct Light { vec3f Color; float Intensity; }\n#sal\n"

    def _lighting(self, before, after=""):
        src = (
            "#stage pixel\n#sal\nuse Common::Light;\n" + before +
            "const struct Lighting : Order(2) { uint Count; Light[32] Lights; }\n" + after + "#sal\n"
        )
        batch = compile_batch([SourceFile("Common", self.COMMON), SourceFile("Lit", src)])
        assert batch.ok, batch.diagnostics
        return batch["Lit"].reflection

    @pytest.mark.parametrize("before,after", [
        ("", ""),
        ("const struct A { float X; }\nconst struct B { float X; }\n", ""),
        ("", "const struct A { float X; }\nconst struct B { float X; }\nconst struct C { float X; }\n"),
    ])
    def test_lands_at_slot_two(self, before, after):
        refl = self._lighting(before, after)
        slots = {cb.name: cb.binding for cb in refl.constant_buffers}
        assert slots["Lighting"] == 2
        assert len(set(slots.values())) == len(slots)

    def test_struct_array_layout(self):
        refl = self._lighting("")
        lighting = next(cb for cb in refl.constant_buffers if cb.name == "Lighting")
        assert lighting.size == 16 + 32 * 16
        assert lighting.members[1].array_size == 32

    def test_sorted_by_binding(self):
        refl = self._lighting("const struct A { float X; }\n")
        bindings = [cb.binding for cb in refl.constant_buffers]
        assert bindings == sorted(bindings)


class TestVkFormat:
    @pytest.mark.parametrize("name,fmt", [
        ("float", "R32_SFLOAT"), ("vec2f", "R32G32_SFLOAT"), ("vec3i", "R32G32B32_SINT"),
        ("vec4u", "R32G32B32A32_UINT"), ("double", "R64_SFLOAT"),
    ])
    def test_formats(self, name, fmt):
        assert vk_format(resolve_builtin(name)) == fmt
