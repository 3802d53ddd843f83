"""Compilation options shared by the batch driver, generator and CLI."""

from __future__ import annotations
from dataclasses import dataclass, field

from salc.codegen.backend import BackendEnvironment


@dataclass
class CompileOptions:
    glsl_version: int = 450
    profile: str = "core"
    explicit_bindings: bool = True   # emit binding = N qualifiers (GL 4.2+)
    jobs: int = 1                    # worker threads for per-file phases
    emit_reflection: bool = True
    validate: bool = False           # run generated source through the backend
    program_bindings: bool = True    # one binding per resource name across the batch
    backend_env: BackendEnvironment = field(default_factory=BackendEnvironment)

    @property
    def member_offsets(self) -> bool:
        """Explicit member offsets need GLSL 4.40 (enhanced layouts)."""
        return self.glsl_version >= 440
