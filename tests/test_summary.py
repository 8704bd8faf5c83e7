from __future__ import annotations

from pathlib import Path

import pytest

import gen


def _make_summary(**overrides: object) -> gen.GenerationSummary:
    values: dict[str, object] = {
        "source_label": "gl.xml",
        "output_dir": "/tmp/build",
        "counts": gen.GenerationCounts(
            profiles=31,
            extensions=4,
            vendor_groups=3,
            functions=9,
            shared_functions=6,
            enumerants=6,
            unexported=0,
        ),
        "file_count": 48,
        "total_lines": 1234,
        "dangling_count": 0,
    }
    values.update(overrides)
    return gen.GenerationSummary(**values)  # type: ignore[arg-type]


def test_t_01_build_generation_counts_from_fixture(minimal_registry: gen.Registry) -> None:
    result = gen.generate_modules(minimal_registry)

    counts = gen.build_generation_counts(result)

    assert counts == gen.GenerationCounts(
        profiles=len(gen.PROFILE_ARTIFACTS),
        extensions=4,
        vendor_groups=3,
        functions=9,
        shared_functions=6,
        enumerants=6,
        unexported=0,
    )


def test_t_02_format_generation_summary_layout() -> None:
    text = gen.format_generation_summary(_make_summary())

    assert text.splitlines() == [
        "OpenGL raw bindings generated:",
        "",
        "  Source:     gl.xml",
        "  Output:     /tmp/build",
        "",
        "  Modules:",
        "    Profiles:          31",
        "    Extensions:         4",
        "    Vendor groups:      3",
        "",
        "  Symbols:",
        "    Functions:          9  (6 shared)",
        "    Enumerants:         6",
        "    Unexported:         0",
        "",
        "  Total: 1,234 lines across 48 files",
        "",
        '  Verify: PYTHONPATH=/tmp/build python -c "import glraw.extension"',
    ]
    assert text.endswith("\n")


def test_t_03_format_generation_summary_reports_dangling_only_when_present() -> None:
    assert "Dangling:" not in gen.format_generation_summary(_make_summary())
    assert "    Dangling:           2" in gen.format_generation_summary(
        _make_summary(dangling_count=2)
    )


def test_t_04_build_generation_summary_uses_written_totals(
    minimal_registry: gen.Registry,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    result = gen.generate_modules(minimal_registry)
    config = gen.WriteConfig(source_label="gl_minimal.xml")
    written = gen.write_package(tmp_path, config, result.modules)

    summary = gen.build_generation_summary(config, result, written)
    gen.print_generation_summary(summary)

    assert summary.file_count == len(result.modules)
    assert summary.total_lines == written.total_lines
    assert summary.output_dir == str(tmp_path)
    assert capsys.readouterr().out == gen.format_generation_summary(summary)
