"""Command-line interface for the SAL compiler."""

import argparse
import logging
import sys
from pathlib import Path

from salc.options import CompileOptions
from salc.codegen.backend import BackendEnvironment


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="salc",
        description="SAL shader compiler: expands annotated shaders into plain GLSL",
    )
    parser.add_argument("inputs", nargs="*", help="Input shader files (compiled as one batch)")
    parser.add_argument(
        "-o", "--output-dir", type=Path, default=None,
        help="Output directory (default: directory of the first input)",
    )
    parser.add_argument(
        "--no-reflection",
        action="store_true",
        help="Skip .json reflection metadata emission",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Compile generated GLSL with glslangValidator",
    )
    parser.add_argument(
        "--client", choices=("opengl", "vulkan"), default="opengl",
        help="Client API for backend validation",
    )
    parser.add_argument(
        "--glsl-version", type=int, default=450, metavar="N",
        help="GLSL #version of the generated source",
    )
    parser.add_argument(
        "--no-explicit-bindings", action="store_true",
        help="Omit binding = N qualifiers for older GL targets",
    )
    parser.add_argument(
        "--per-file-bindings", action="store_true",
        help="Number bindings per file instead of across the whole batch",
    )
    parser.add_argument(
        "-j", "--jobs", type=int, default=1, metavar="N",
        help="Worker threads for per-file phases",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log compiler phases",
    )
    parser.add_argument(
        "--version", action="version", version="salc 0.1.0"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.inputs:
        parser.print_help()
        sys.exit(0)

    paths = [Path(p) for p in args.inputs]
    for path in paths:
        if not path.exists():
            print(f"Error: file not found: {path}", file=sys.stderr)
            sys.exit(1)

    options = CompileOptions(
        glsl_version=args.glsl_version,
        explicit_bindings=not args.no_explicit_bindings,
        jobs=max(1, args.jobs),
        emit_reflection=not args.no_reflection,
        validate=args.validate,
        program_bindings=not args.per_file_bindings,
        backend_env=BackendEnvironment(client=args.client),
    )
    output_dir = args.output_dir or paths[0].parent

    from salc.compiler import compile_files
    batch = compile_files(paths, output_dir, options)

    for d in batch.diagnostics:
        print(f"Error: {d}", file=sys.stderr)
    if not batch.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
