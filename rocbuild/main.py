"""
Command line entry point, for build systems that run ``rocbuild`` as a
pre-compilation step::

    rocbuild build --out-dir build/kernels --kernels 'src/**/*.hip' --bindings build/kernels/kernels.py
"""
import argparse
import logging
import pathlib
import sys

from rocbuild.build.builder import Builder
from rocbuild.errors import RocBuildError
from rocbuild.tools.toolchain import ToolchainLocator
from rocbuild.utils import hipcc

def parse_args(argv : list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog = 'rocbuild',
        description = 'Compile HIP kernels into code objects and generate a Python module exposing them.',
        formatter_class = argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument('-v', '--verbose', action = 'store_true', help = 'Log every compilation.')

    subparsers = parser.add_subparsers(dest = 'command', required = True)

    build = subparsers.add_parser('build', help = 'Compile the kernels.', formatter_class = argparse.ArgumentDefaultsHelpFormatter)
    build.add_argument('--out-dir', type = pathlib.Path, default = None, help = 'Output directory. Defaults to the OUT_DIR environment variable.')
    build.add_argument('--kernels', type = str, default = None, help = 'Glob of kernel sources. Defaults to src/**/*.hip.')
    build.add_argument('--includes', type = str, default = None, help = 'Glob of include headers. Defaults to src/**/*.h.')
    build.add_argument('--watch', type = pathlib.Path, nargs = '*', default = (), help = 'Paths to watch without compiling them.')
    build.add_argument('--rocm-root', type = pathlib.Path, default = None, help = 'ROCm installation.')
    build.add_argument('--gpu-arch', type = str, default = None, help = 'Architecture, bypassing detection.')
    build.add_argument('--arg', dest = 'args', action = 'append', default = [], help = 'Extra hipcc argument (repeatable).')
    build.add_argument('--no-translate', action = 'store_true', help = 'Do not try hipify-perl.')
    build.add_argument('--bindings', type = pathlib.Path, default = None, help = 'Generated Python module. Defaults to <out-dir>/kernels.py.')

    subparsers.add_parser('info', help = 'Print the resolved toolchain.')

    return parser.parse_args(argv)

def build(args : argparse.Namespace) -> None:
    builder = Builder(out_dir = args.out_dir, verbose = args.verbose)

    if args.kernels is not None:
        builder.kernel_paths_glob(args.kernels)
    if args.includes is not None:
        builder.include_paths_glob(args.includes)
    if args.watch:
        builder.watch(args.watch)
    if args.rocm_root is not None:
        builder.rocm_root(args.rocm_root)
    if args.gpu_arch is not None:
        builder.gpu_arch(args.gpu_arch)
    if args.no_translate:
        builder.translate_with(None)
    for arg in args.args:
        builder.arg(arg)

    bindings = builder.build()
    bindings.write(args.bindings if args.bindings is not None else builder.out_dir / 'kernels.py')

    if args.verbose and builder.report is not None:
        print(builder.report, end = '')

def info() -> None:
    toolchain = ToolchainLocator.locate().resolve()
    print(toolchain, end = '')
    print(f'hipcc {hipcc.get_version(toolchain.hipcc)}')

def main(argv : list[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(level = logging.DEBUG if args.verbose else logging.INFO)

    try:
        match args.command:
            case 'build':
                build(args)
            case 'info':
                info()
    except RocBuildError as error:
        logging.error(error)
        return 1
    return 0

if __name__ == "__main__":

    sys.exit(main())
