import argparse
import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import gen  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    gl_xml = tmp_path / "gl.xml"
    gl_xml.write_text("<registry />\n", encoding="utf-8")

    man_pages = tmp_path / "man_pages.txt"
    man_pages.write_text("# reference pages\nglDrawArrays\n", encoding="utf-8")

    extension_specs = tmp_path / "extension_specs.txt"
    extension_specs.write_text("EXT/framebuffer_object\n", encoding="utf-8")

    output_dir = tmp_path / "out"
    return {
        "gl_xml": gl_xml,
        "man_pages": man_pages,
        "extension_specs": extension_specs,
        "output_dir": output_dir,
    }


@pytest.fixture
def missing_path(tmp_path: Path) -> Path:
    return tmp_path / "missing"


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "gl_xml": existing_paths["gl_xml"],
            "output_dir": existing_paths["output_dir"],
            "man_pages": None,
            "extension_specs": None,
            "lenient": False,
            "list_features": False,
            "list_extensions": False,
            "info": None,
            "filter": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_registry_root() -> Callable[[str], ET.Element]:
    def _make_registry_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f"<registry>{inner_xml}</registry>")

    return _make_registry_root


@pytest.fixture
def make_command() -> Callable[..., gen.Command]:
    """Build a Command from (name, type_name, pointer) parameter triples."""

    def _make_command(
        name: str,
        *params: tuple[str, str | None, int],
        return_type: gen.TypeRef = gen.TypeRef(None),
        alias: str | None = None,
        vec_equiv: str | None = None,
    ) -> gen.Command:
        return gen.Command(
            name=name,
            return_type=return_type,
            parameters=tuple(
                gen.Parameter(pname, gen.TypeRef(type_name, pointer))
                for pname, type_name, pointer in params
            ),
            alias=alias,
            vec_equiv=vec_equiv,
        )

    return _make_command


@pytest.fixture
def minimal_gl_xml() -> Path:
    return FIXTURES_DIR / "gl_minimal.xml"


@pytest.fixture
def minimal_registry(minimal_gl_xml: Path) -> gen.Registry:
    return gen.load_registry(minimal_gl_xml)
