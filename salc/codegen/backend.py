"""Invoke glslangValidator to compile and link generated GLSL.

The backend is an external collaborator: SAL never relies on its
reflection output for binding slots, it only reports success or the
backend's log verbatim.
"""

from __future__ import annotations
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from salc.errors import BackendCompileError

logger = logging.getLogger(__name__)

GLSLANG = "glslangValidator"

# SAL stage name -> glslang stage suffix
STAGE_SUFFIX = {
    "vertex": "vert",
    "hull": "tesc",
    "domain": "tese",
    "geometry": "geom",
    "pixel": "frag",
}


@dataclass(frozen=True)
class BackendEnvironment:
    client: str = "opengl"       # "opengl" or "vulkan"
    client_version: str = "100"
    target: str = "vulkan1.0"
    profile: str = "core"


@dataclass(frozen=True)
class BackendResult:
    success: bool
    info_log: str = ""
    debug_log: str = ""
    binary: bytes = b""


@dataclass(frozen=True)
class LinkResult:
    success: bool
    info_log: str = ""
    reflection: str = ""


class ShaderBackend(Protocol):
    def compile_stage(self, source: str, stage: str, env: BackendEnvironment) -> BackendResult:
        ...

    def link_program(self, stages: Sequence[tuple[str, str]], env: BackendEnvironment) -> LinkResult:
        ...


def glslang_available() -> bool:
    return shutil.which(GLSLANG) is not None


def _client_args(env: BackendEnvironment) -> list[str]:
    if env.client == "vulkan":
        return ["-V", "--target-env", env.target]
    return ["-G" + env.client_version]


class GlslangBackend:
    def __init__(self, executable: str = GLSLANG):
        self.executable = executable

    def compile_stage(self, source: str, stage: str, env: BackendEnvironment) -> BackendResult:
        suffix = STAGE_SUFFIX[stage]
        with tempfile.TemporaryDirectory() as tmp:
            src_path = Path(tmp) / f"shader.{suffix}"
            spv_path = Path(tmp) / f"shader.{suffix}.spv"
            src_path.write_text(source, encoding="utf-8")
            try:
                result = subprocess.run(
                    [self.executable, *_client_args(env), str(src_path), "-o", str(spv_path)],
                    capture_output=True, text=True,
                )
            except OSError as e:
                logger.debug("cannot run %s: %s", self.executable, e)
                return BackendResult(False, info_log=f"{self.executable}: {e}")
            log = (result.stdout + result.stderr).replace(str(src_path), f"<{stage}>")
            if result.returncode != 0:
                return BackendResult(False, info_log=log)
            binary = spv_path.read_bytes() if spv_path.exists() else b""
        return BackendResult(True, info_log=log, binary=binary)

    def link_program(self, stages: Sequence[tuple[str, str]], env: BackendEnvironment) -> LinkResult:
        """Link ``(stage, source)`` pairs and return glslang's reflection dump."""
        with tempfile.TemporaryDirectory() as tmp:
            paths = []
            for stage, source in stages:
                path = Path(tmp) / f"shader.{STAGE_SUFFIX[stage]}"
                path.write_text(source, encoding="utf-8")
                paths.append(str(path))
            try:
                result = subprocess.run(
                    [self.executable, *_client_args(env), "-l", "-q", *paths],
                    capture_output=True, text=True,
                )
            except OSError as e:
                return LinkResult(False, info_log=f"{self.executable}: {e}")
        if result.returncode != 0:
            return LinkResult(False, info_log=result.stdout + result.stderr)
        return LinkResult(True, reflection=result.stdout)


def validate_stage(backend: ShaderBackend, source: str, stage: str,
                   env: BackendEnvironment, file: str = "") -> BackendResult:
    """Compile one stage, raising ``BackendCompileError`` on failure."""
    logger.debug("%s: validating %s stage", file, stage)
    result = backend.compile_stage(source, stage, env)
    if not result.success:
        raise BackendCompileError(result.info_log, file)
    return result
