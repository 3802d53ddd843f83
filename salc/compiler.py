"""Top-level compiler orchestration.

A batch is compiled in phases separated by barriers: every file is
preprocessed and parsed and its declarations are registered in the shared
namespace table; once the table is frozen, each file is resolved, modelled
and allocated on its own. A second barrier relocates buffer and texture
bindings across the batch, treated as the stages of one program, before
each file is generated. A failure in one file never stops the others.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from salc.errors import Diagnostic, DuplicateDefinitionError, SalError, SlotCollisionError
from salc.options import CompileOptions
from salc.preprocessor import PreprocessedSource, preprocess
from salc.parser.ast_nodes import Module
from salc.parser.tree_builder import parse_sal
from salc.analysis.namespace import FrozenNamespace, NamespaceTable, resolve_imports
from salc.analysis.model import FileModel
from salc.analysis.semantic import build_model
from salc.analysis.binding_allocator import assign_bindings, relocate_program
from salc.codegen.glsl import generate_glsl
from salc.codegen.reflection import ReflectionDescriptor, emit_reflection_json, generate_reflection
from salc.codegen.backend import BackendResult, GlslangBackend, ShaderBackend, validate_stage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    name: str   # file identifier; also the namespace other files import from
    text: str


@dataclass
class FileResult:
    name: str
    stage: str = ""
    source: str = ""
    reflection: Optional[ReflectionDescriptor] = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    backend: Optional[BackendResult] = None

    @property
    def ok(self) -> bool:
        return not self.diagnostics


@dataclass
class BatchResult:
    files: list[FileResult]

    @property
    def ok(self) -> bool:
        return all(f.ok for f in self.files)

    @property
    def failed(self) -> list[FileResult]:
        return [f for f in self.files if not f.ok]

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [d for f in self.files for d in f.diagnostics]

    def __getitem__(self, name: str) -> FileResult:
        for f in self.files:
            if f.name == name:
                return f
        raise KeyError(name)


@dataclass
class _Parsed:
    pre: PreprocessedSource
    module: Module


def _map(fn: Callable, items: Sequence, jobs: int) -> list:
    if jobs <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        # map() yields in submission order
        return list(pool.map(fn, items))


def _front_end(src: SourceFile) -> _Parsed | SalError:
    try:
        pre = preprocess(src.text, src.name)
        statements = parse_sal(pre.sal_text, src.name)
    except SalError as e:
        return e
    logger.debug("%s: parsed %d statement(s)", src.name, len(statements))
    return _Parsed(pre, Module(src.name, pre.stage, statements))


@dataclass
class _Analysed:
    parsed: _Parsed
    result: FileResult
    model: Optional[FileModel] = None


def _analyse(parsed: _Parsed, namespace: FrozenNamespace) -> _Analysed:
    module = parsed.module
    result = FileResult(module.file, stage=module.stage)
    try:
        imports = resolve_imports(module, namespace)
        model = build_model(module, namespace, imports)
        assign_bindings(model)
    except SalError as e:
        logger.debug("%s: %s", module.file, e)
        result.diagnostics.append(Diagnostic.from_error(e))
        return _Analysed(parsed, result)
    return _Analysed(parsed, result, model)


def _relocate(analysed: list[_Analysed]) -> None:
    live = [a for a in analysed if a.model is not None]
    while live:
        try:
            relocate_program([a.model for a in live])
            return
        except SlotCollisionError as e:
            logger.debug("%s: %s", e.file, e)
            culprit = next(a for a in live if a.model.file == e.file)
            culprit.result.diagnostics.append(Diagnostic.from_error(e))
            culprit.model = None
            live.remove(culprit)


def _generate(item: _Analysed, options: CompileOptions,
              backend: ShaderBackend | None) -> FileResult:
    result, model = item.result, item.model
    if model is None:
        return result
    try:
        result.source = generate_glsl(item.parsed.pre, model, options)
        if options.emit_reflection:
            result.reflection = generate_reflection(model, model.file)
        if options.validate:
            result.backend = validate_stage(
                backend or GlslangBackend(), result.source, model.stage,
                options.backend_env, model.file,
            )
    except SalError as e:
        logger.debug("%s: %s", model.file, e)
        result.diagnostics.append(Diagnostic.from_error(e))
    return result


def compile_batch(sources: Iterable[SourceFile], options: CompileOptions | None = None,
                  backend: ShaderBackend | None = None) -> BatchResult:
    """Compile every source of one batch; results keep input order."""
    options = options or CompileOptions()
    sources = list(sources)
    results: dict[int, FileResult] = {}

    seen: dict[str, int] = {}
    unique = []
    for i, src in enumerate(sources):
        if src.name in seen:
            err = DuplicateDefinitionError(src.name, src.name, what="file")
            results[i] = FileResult(src.name, diagnostics=[Diagnostic.from_error(err)])
            continue
        seen[src.name] = i
        unique.append((i, src))

    front = _map(lambda item: (item[0], _front_end(item[1])), unique, options.jobs)

    table = NamespaceTable()
    parsed = []
    for i, outcome in front:
        if isinstance(outcome, SalError):
            results[i] = FileResult(sources[i].name, diagnostics=[Diagnostic.from_error(outcome)])
            continue
        table.register(outcome.module)
        parsed.append((i, outcome))
    namespace = table.freeze()
    logger.debug("namespace frozen with %d file(s)", len(namespace.files))

    analysed = _map(lambda item: (item[0], _analyse(item[1], namespace)), parsed, options.jobs)
    if options.program_bindings:
        _relocate([a for _, a in analysed])

    back = _map(
        lambda item: (item[0], _generate(item[1], options, backend)),
        analysed, options.jobs,
    )
    for i, result in back:
        results[i] = result

    batch = BatchResult([results[i] for i in range(len(sources))])
    for d in batch.diagnostics:
        logger.debug("diagnostic: %s", d)
    return batch


def compile_source(text: str, name: str = "shader",
                   options: CompileOptions | None = None) -> FileResult:
    """Compile a single self-contained file."""
    return compile_batch([SourceFile(name, text)], options)[name]


def compile_files(paths: Sequence[Path], output_dir: Path,
                  options: CompileOptions | None = None) -> BatchResult:
    """Compile files as one batch (identifier = file stem) and write outputs."""
    options = options or CompileOptions()
    sources = [SourceFile(Path(p).stem, Path(p).read_text(encoding="utf-8")) for p in paths]
    batch = compile_batch(sources, options)

    output_dir.mkdir(parents=True, exist_ok=True)
    for result in batch.files:
        if not result.ok:
            continue
        glsl_path = output_dir / f"{result.name}.glsl"
        glsl_path.write_text(result.source, encoding="utf-8")
        print(f"Wrote {glsl_path}")

        if result.reflection is not None:
            json_path = output_dir / f"{result.name}.json"
            json_path.write_text(emit_reflection_json(result.reflection), encoding="utf-8")
            print(f"Wrote {json_path}")
    return batch
