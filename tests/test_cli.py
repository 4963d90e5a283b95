from pathlib import Path

from click.testing import CliRunner

from texmirror.cli import main


def _write(tmp_path: Path, tex: str) -> Path:
    path = tmp_path / "paper.tex"
    path.write_text(tex, encoding="utf-8")
    return path


def test_cli_compiles_document_without_formulas(tmp_path: Path, bib_path: Path) -> None:
    tex_path = _write(tmp_path, "\\section{Hello}\nPlain text \\cite{knuth84}.\n")
    out_dir = tmp_path / "site"

    result = CliRunner().invoke(main, ["compile", str(tex_path), str(bib_path), str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "Rendered:" in result.output
    html = (out_dir / "index.html").read_text(encoding="utf-8")
    assert "Plain text" in html
    assert "Donald E. Knuth" in html
    assert (out_dir / "style.css").is_file()


def test_cli_reports_structural_errors(tmp_path: Path, bib_path: Path) -> None:
    tex_path = _write(tmp_path, "Fine.\n\\unknowncommand\n")
    out_dir = tmp_path / "site"

    result = CliRunner().invoke(main, ["compile", str(tex_path), str(bib_path), str(out_dir)])

    assert result.exit_code == 1
    assert f"{tex_path}:2:1: unknown control sequence" in result.output
    assert "2 | \\unknowncommand" in result.output
    assert not out_dir.exists()


def test_cli_lists_formula_failures(tmp_path: Path, bib_path: Path) -> None:
    tex_path = _write(tmp_path, "Broken $x$ and $y$.\n")
    out_dir = tmp_path / "site"

    result = CliRunner().invoke(
        main,
        [
            "compile",
            str(tex_path),
            str(bib_path),
            str(out_dir),
            "--cache-dir",
            str(tmp_path / "cache"),
            "--latex",
            "texmirror-test-no-such-latex",
            "-j",
            "1",
        ],
    )

    assert result.exit_code == 2
    assert "Rendered with errors" in result.output
    assert "typeset failed for formula 'x'" in result.output
    assert "typeset failed for formula 'y'" in result.output
    assert (out_dir / "index.html").is_file()


def test_cli_reads_options_from_environment(tmp_path: Path, bib_path: Path) -> None:
    tex_path = _write(tmp_path, "Just $z$.\n")
    out_dir = tmp_path / "site"

    result = CliRunner().invoke(
        main,
        ["compile", str(tex_path), str(bib_path), str(out_dir)],
        env={"TEXMIRROR_LATEX": "texmirror-test-no-such-latex", "TEXMIRROR_CACHE_DIR": str(tmp_path / "env-cache")},
    )

    assert result.exit_code == 2
    assert (tmp_path / "env-cache").is_dir()
    assert not (tmp_path / ".texmirror-cache").exists()


def test_cli_rejects_invalid_jobs(tmp_path: Path, bib_path: Path) -> None:
    tex_path = _write(tmp_path, "Text.\n")

    result = CliRunner().invoke(main, ["compile", str(tex_path), str(bib_path), str(tmp_path / "site"), "-j", "0"])

    assert result.exit_code == 2
    assert not (tmp_path / "site").exists()


def test_cli_help_lists_compile() -> None:
    result = CliRunner().invoke(main, ["--help"])

    assert result.exit_code == 0
    assert "compile" in result.output
