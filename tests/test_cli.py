from collections.abc import Callable
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

import gen


def _assert_config_code(exc_info: pytest.ExceptionInfo[Exception], code: str) -> None:
    err = exc_info.value
    assert getattr(err, "code") == code
    assert getattr(err, "code") in gen.VALID_ERROR_CODES


def test_import_gen_module_smoke() -> None:
    assert callable(gen.main)


def test_build_argument_parser_exposes_cli_surface_and_defaults() -> None:
    parser = gen.build_argument_parser()
    option_actions = {
        option: action for action in parser._actions for option in action.option_strings
    }

    expected_options = {
        "--gl-xml",
        "--output-dir",
        "--man-pages",
        "--extension-specs",
        "--lenient",
        "--list-features",
        "--list-extensions",
        "--info",
        "--filter",
    }

    assert expected_options.issubset(option_actions.keys())
    assert option_actions["--gl-xml"].default == gen.DEFAULT_GL_XML
    assert option_actions["--output-dir"].default == gen.DEFAULT_OUTPUT_DIR
    assert option_actions["--man-pages"].default is None
    assert option_actions["--extension-specs"].default is None
    assert option_actions["--lenient"].default is False
    assert option_actions["--list-features"].default is False
    assert option_actions["--list-extensions"].default is False
    assert option_actions["--info"].default is None
    assert option_actions["--filter"].default is None


@pytest.mark.parametrize(
    "argv",
    [
        ["--list-features", "--list-extensions"],
        ["--list-extensions", "--info", "GL_ARB_sync"],
    ],
)
def test_parse_args_enforces_argparse_mutual_exclusion(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        gen.parse_args(argv)

    assert exc_info.value.code == 2


def test_parse_args_unknown_flag_exits_with_code_2() -> None:
    with pytest.raises(SystemExit) as exc_info:
        gen.parse_args(["--not-a-flag"])

    assert exc_info.value.code == 2


def test_parse_args_maps_paths_without_semantic_validation(
    existing_paths: dict[str, Path],
) -> None:
    args = gen.parse_args(
        ["--gl-xml", str(existing_paths["gl_xml"]), "--lenient", "--man-pages", "x.txt"]
    )

    assert isinstance(args.gl_xml, Path)
    assert args.gl_xml == existing_paths["gl_xml"]
    assert args.lenient is True
    assert args.man_pages == Path("x.txt")


def test_validate_path_exists_accepts_existing_path(
    existing_paths: dict[str, Path],
) -> None:
    path = existing_paths["gl_xml"]
    assert gen.validate_path_exists(path, "--gl-xml") == path


def test_validate_path_exists_rejects_none_with_path_not_found() -> None:
    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_path_exists(None, "--gl-xml")

    _assert_config_code(exc_info, "PATH_NOT_FOUND")
    assert "--gl-xml" in getattr(exc_info.value, "message")


def test_validate_path_exists_raises_path_not_found(tmp_path: Path) -> None:
    missing = tmp_path / "does-not-exist.xml"

    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_path_exists(missing, "--gl-xml")

    _assert_config_code(exc_info, "PATH_NOT_FOUND")
    assert str(missing) in getattr(exc_info.value, "message")


def test_validate_config_generate_mode_returns_strict_generate_config(
    make_args: Callable[..., object],
    existing_paths: dict[str, Path],
) -> None:
    config = gen.validate_config(make_args())

    assert isinstance(config, gen.GenerateConfig)
    assert config.gl_xml == existing_paths["gl_xml"]
    assert config.output_dir == existing_paths["output_dir"]
    assert config.man_pages is None
    assert config.extension_specs is None
    assert config.strict is True


def test_validate_config_generate_mode_carries_index_files_and_lenient(
    make_args: Callable[..., object],
    existing_paths: dict[str, Path],
) -> None:
    args = make_args(
        man_pages=existing_paths["man_pages"],
        extension_specs=existing_paths["extension_specs"],
        lenient=True,
    )

    config = gen.validate_config(args)

    assert isinstance(config, gen.GenerateConfig)
    assert config.man_pages == existing_paths["man_pages"]
    assert config.extension_specs == existing_paths["extension_specs"]
    assert config.strict is False


def test_validate_config_rejects_missing_index_file(
    make_args: Callable[..., object],
    missing_path: Path,
) -> None:
    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_config(make_args(man_pages=missing_path))

    _assert_config_code(exc_info, "PATH_NOT_FOUND")
    assert "--man-pages" in getattr(exc_info.value, "message")


def test_validate_config_rejects_missing_gl_xml_with_clone_hint(
    make_args: Callable[..., object],
    missing_path: Path,
) -> None:
    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_config(make_args(gl_xml=missing_path))

    _assert_config_code(exc_info, "PATH_NOT_FOUND")
    assert "OpenGL-Registry" in (exc_info.value.suggestion or "")


@pytest.mark.parametrize(
    ("overrides", "command"),
    [
        ({"list_features": True}, "list-features"),
        ({"list_extensions": True}, "list-extensions"),
        ({"list_extensions": True, "filter": "framebuffer"}, "list-extensions"),
        ({"info": "GL_ARB_sync"}, "info"),
    ],
)
def test_validate_config_discovery_mode_returns_discovery_config(
    make_args: Callable[..., object],
    missing_path: Path,
    overrides: dict[str, object],
    command: str,
) -> None:
    config = gen.validate_config(make_args(output_dir=missing_path, **overrides))

    assert isinstance(config, gen.DiscoveryConfig)
    assert config.command == command
    assert config.filter_text == overrides.get("filter")
    assert config.info_extension == overrides.get("info")


@pytest.mark.parametrize("name", ["GL_ARB", "VK_KHR_swapchain", "GL__sync", "gl_arb_sync"])
def test_validate_config_rejects_malformed_info_extension(
    make_args: Callable[..., object],
    name: str,
) -> None:
    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_config(make_args(info=name))

    _assert_config_code(exc_info, "INVALID_EXTENSION_NAME")


def test_validate_config_rejects_filter_without_list_extensions(
    make_args: Callable[..., object],
) -> None:
    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_config(make_args(filter="sync", list_features=True))

    _assert_config_code(exc_info, "FILTER_WITHOUT_LIST")


@pytest.mark.parametrize(
    "overrides",
    [
        {"lenient": True, "list_features": True},
        {"man_pages": Path("man.txt"), "list_extensions": True},
        {"extension_specs": Path("ext.txt"), "info": "GL_ARB_sync"},
    ],
)
def test_validate_config_rejects_cross_mode_conflicts(
    make_args: Callable[..., object],
    overrides: dict[str, object],
) -> None:
    with pytest.raises(gen.ConfigError) as exc_info:
        gen.validate_config(make_args(**overrides))

    _assert_config_code(exc_info, "CONFLICT_GENERATE_DISCOVERY")


def test_config_contracts_are_frozen(make_args: Callable[..., object]) -> None:
    config = gen.validate_config(make_args())

    with pytest.raises(FrozenInstanceError):
        config.strict = False  # type: ignore[misc]


def test_config_error_rejects_unknown_code() -> None:
    with pytest.raises(ValueError):
        gen.ConfigError("NOT_A_CODE", "message")


def test_generation_error_rejects_unknown_code() -> None:
    with pytest.raises(ValueError):
        gen.GenerationError("NOT_A_CODE", "message")


def test_generation_error_carries_code_and_message() -> None:
    err = gen.GenerationError("UNKNOWN_TYPE", "Unknown GL type: GLfoo")

    assert err.code == "UNKNOWN_TYPE"
    assert err.message == "Unknown GL type: GLfoo"
    assert str(err) == "Unknown GL type: GLfoo"


def test_main_reports_config_error_and_exits_1(
    missing_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    with pytest.raises(SystemExit) as exc_info:
        gen.main(["--gl-xml", str(missing_path)])

    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "Config error [PATH_NOT_FOUND]" in out
    assert "Hint:" in out


def test_main_reports_generation_error_and_exits_1(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    gl_xml = tmp_path / "gl.xml"
    gl_xml.write_text(
        '<registry><feature api="gl" name="GL_VERSION_9_9" number="9.9">'
        "<require/></feature></registry>",
        encoding="utf-8",
    )

    with pytest.raises(SystemExit) as exc_info:
        gen.main(["--gl-xml", str(gl_xml), "--output-dir", str(tmp_path / "out")])

    assert exc_info.value.code == 1
    assert "Generation error [UNKNOWN_PROFILE_MAPPING]" in capsys.readouterr().out


def test_main_reports_parse_error_and_exits_1(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    gl_xml = tmp_path / "gl.xml"
    gl_xml.write_text("<registry>", encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        gen.main(["--gl-xml", str(gl_xml), "--output-dir", str(tmp_path / "out")])

    assert exc_info.value.code == 1
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == f"Parsing: {gl_xml}"
    assert lines[-1].startswith("Error:")
