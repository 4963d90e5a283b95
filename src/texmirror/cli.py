"""texmirror CLI entrypoint."""

from __future__ import annotations

from pathlib import Path

import click

from texmirror import __version__
from texmirror.config import CompilerConfig
from texmirror.errors import RenderFailures, TexMirrorError
from texmirror.logging_setup import setup_logging
from texmirror.pipeline import compile_document

EXIT_STRUCTURAL = 1
EXIT_FORMULAS = 2


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="texmirror")
def main() -> None:
    """Publish a LaTeX document as a static HTML site with SVG formulas."""


@main.command("compile")
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("bibliography", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="TEXMIRROR_CACHE_DIR",
    default=None,
    help="Formula cache directory (default: .texmirror-cache next to DOCUMENT)",
)
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    envvar="TEXMIRROR_JOBS",
    default=None,
    help="Formulas rendered in parallel (default: CPU count)",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    envvar="TEXMIRROR_TIMEOUT",
    default=None,
    help="Seconds allowed per external tool invocation",
)
@click.option("--latex", envvar="TEXMIRROR_LATEX", default="pdflatex", show_default=True, help="TeX engine")
@click.option("--pdfcrop", envvar="TEXMIRROR_PDFCROP", default="pdfcrop", show_default=True, help="PDF cropper")
@click.option("--pdf2svg", envvar="TEXMIRROR_PDF2SVG", default="pdf2svg", show_default=True, help="PDF to SVG tracer")
@click.option(
    "--toolchain-tag",
    envvar="TEXMIRROR_TOOLCHAIN_TAG",
    default="",
    help="Extra text mixed into every formula fingerprint, e.g. the TeX distribution version",
)
@click.option("--verbose", "-v", is_flag=True, help="Report stage progress and cache statistics")
@click.option("--debug", is_flag=True, help="Also log every external command")
def compile_command(
    document: Path,
    bibliography: Path,
    output_dir: Path,
    cache_dir: Path | None,
    jobs: int | None,
    timeout: float | None,
    latex: str,
    pdfcrop: str,
    pdf2svg: str,
    toolchain_tag: str,
    verbose: bool,
    debug: bool,
) -> None:
    """Compile DOCUMENT with BIBLIOGRAPHY into OUTPUT_DIR."""
    setup_logging(verbose=verbose, debug=debug)
    config = CompilerConfig(
        cache_dir=cache_dir,
        jobs=jobs,
        timeout=timeout,
        latex_command=latex,
        crop_command=pdfcrop,
        trace_command=pdf2svg,
        toolchain_tag=toolchain_tag,
    )

    try:
        result = compile_document(document, bibliography, output_dir, config)
    except RenderFailures as exc:
        click.echo(f"Rendered with errors: {output_dir / 'index.html'}", err=True)
        for error in exc.errors:
            click.echo(f"  {error}", err=True)
        raise SystemExit(EXIT_FORMULAS) from exc
    except TexMirrorError as exc:
        click.echo(f"Error: {exc.diagnostic()}", err=True)
        raise SystemExit(EXIT_STRUCTURAL) from exc
    except OSError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_STRUCTURAL) from exc

    report = result.report
    click.echo(
        f"Rendered: {result.output.index_path} "
        f"({report.rendered} formula(s) rendered, {report.reused} reused from cache)"
    )


if __name__ == "__main__":  # pragma: no cover
    main()
