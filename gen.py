"""OpenGL raw bindings generator for Python.

Generates ctypes call-through bindings from the Khronos gl.xml registry.
Produces a `glraw` package with one module per profile, version and
extension, a shared module for functions exported by more than one of them,
and vendor aggregate modules.

Usage:
    python gen.py --gl-xml thoughts/repos/OpenGL-Registry/xml/gl.xml
"""

import argparse
import keyword
import re
import sys
import textwrap
import xml.etree.ElementTree as ET
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple

PROJECT_ROOT = Path(__file__).parent
DEFAULT_GL_XML = (
    PROJECT_ROOT / "thoughts" / "repos" / "OpenGL-Registry" / "xml" / "gl.xml"
)
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "build"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    gl_xml: Path
    output_dir: Path
    man_pages: Path | None
    extension_specs: Path | None
    strict: bool = True


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str
    filter_text: str | None
    info_extension: str | None
    gl_xml: Path


VALID_ERROR_CODES = {
    "INVALID_EXTENSION_NAME",
    "CONFLICT_GENERATE_DISCOVERY",
    "FILTER_WITHOUT_LIST",
    "PATH_NOT_FOUND",
}
_EXT_NAME_RE = re.compile(r"^GL_[A-Za-z0-9]+_[A-Za-z0-9_]+$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def validate_extension_name(name: str) -> str:
    if _EXT_NAME_RE.match(name):
        return name
    raise ConfigError(
        "INVALID_EXTENSION_NAME",
        f"Invalid extension name: {name}",
        "Extension names must match GL_<VENDOR>_<name> (for example GL_ARB_sync).",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate raw OpenGL bindings for Python"
    )

    parser.add_argument("--gl-xml", type=Path, default=DEFAULT_GL_XML)
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("--man-pages", type=Path, default=None)
    parser.add_argument("--extension-specs", type=Path, default=None)
    parser.add_argument("--lenient", action="store_true", default=False)

    discovery_group = parser.add_mutually_exclusive_group()
    discovery_group.add_argument("--list-features", action="store_true", default=False)
    discovery_group.add_argument(
        "--list-extensions", action="store_true", default=False
    )
    discovery_group.add_argument("--info", type=str, default=None)

    parser.add_argument("--filter", type=str, default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


_GL_XML_SUGGESTION = (
    "Clone OpenGL-Registry:\n"
    "  git clone https://github.com/KhronosGroup/OpenGL-Registry.git thoughts/repos/OpenGL-Registry\n"
    "Or pass a custom path: --gl-xml /your/path/to/gl.xml"
)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    has_generate_input = bool(args.man_pages or args.extension_specs or args.lenient)
    has_discovery_command = bool(
        args.list_features or args.list_extensions or args.info
    )

    if args.filter and not args.list_extensions:
        raise ConfigError(
            "FILTER_WITHOUT_LIST",
            "--filter requires --list-extensions.",
            "Add --list-extensions or remove --filter.",
        )

    if has_generate_input and has_discovery_command:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "Generate flags cannot be combined with discovery flags.",
            "Choose either generate mode or one discovery command.",
        )

    gl_xml = validate_path_exists(args.gl_xml, "--gl-xml", _GL_XML_SUGGESTION)

    if has_discovery_command:
        if args.list_features:
            command = "list-features"
        elif args.list_extensions:
            command = "list-extensions"
        else:
            command = "info"

        info_extension = (
            validate_extension_name(args.info) if args.info is not None else None
        )
        return DiscoveryConfig(
            command=command,
            filter_text=args.filter,
            info_extension=info_extension,
            gl_xml=gl_xml,
        )

    man_pages = (
        validate_path_exists(args.man_pages, "--man-pages")
        if args.man_pages is not None
        else None
    )
    extension_specs = (
        validate_path_exists(args.extension_specs, "--extension-specs")
        if args.extension_specs is not None
        else None
    )
    return GenerateConfig(
        gl_xml=gl_xml,
        output_dir=args.output_dir,
        man_pages=man_pages,
        extension_specs=extension_specs,
        strict=not args.lenient,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Generation errors ---=== #

VALID_GENERATION_ERROR_CODES = {
    "UNKNOWN_PROFILE_MAPPING",
    "MALFORMED_EXTENSION",
    "DANGLING_REFERENCE",
    "UNKNOWN_ARTIFACT",
    "ARTIFACT_NAME_COLLISION",
    "UNKNOWN_TYPE",
    "INVALID_ENUM_VALUE",
}


class GenerationError(Exception):
    """A registry the generator cannot turn into a consistent package."""

    def __init__(self, code: str, message: str):
        if code not in VALID_GENERATION_ERROR_CODES:
            raise ValueError(f"Unknown generation error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message


# ===--- Constants ---=== #

PACKAGE_ROOT = "glraw"
TYPES_MODULE = "glraw.types"
SHARED_MODULE = "glraw.internal.shared"
FFI_MODULE = "glraw.internal.ffi"
PROC_MODULE = "glraw.internal.proc"
PROFILE_PACKAGE = "glraw.profile"
EXTENSION_PACKAGE = "glraw.extension"

MANUAL_PAGE_URL = "https://registry.khronos.org/OpenGL-Refpages/gl4/html/{name}.xhtml"
EXTENSION_SPEC_URL = (
    "https://registry.khronos.org/OpenGL/extensions/{vendor}/{vendor}_{suffix}.txt"
)

# gl.xml type name -> ctypes expression emitted into glraw.types.
GL_TYPES = {
    "GLbitfield": "ctypes.c_uint",
    "GLboolean": "ctypes.c_ubyte",
    "GLbyte": "ctypes.c_int8",
    "GLchar": "ctypes.c_char",
    "GLcharARB": "ctypes.c_char",
    "GLclampd": "ctypes.c_double",
    "GLclampf": "ctypes.c_float",
    "GLclampx": "ctypes.c_int32",
    "GLDEBUGPROC": "ctypes.c_void_p",
    "GLDEBUGPROCAMD": "ctypes.c_void_p",
    "GLDEBUGPROCARB": "ctypes.c_void_p",
    "GLDEBUGPROCKHR": "ctypes.c_void_p",
    "GLdouble": "ctypes.c_double",
    "GLeglClientBufferEXT": "ctypes.c_void_p",
    "GLeglImageOES": "ctypes.c_void_p",
    "GLenum": "ctypes.c_uint",
    "GLfixed": "ctypes.c_int32",
    "GLfloat": "ctypes.c_float",
    "GLhalf": "ctypes.c_uint16",
    "GLhalfARB": "ctypes.c_uint16",
    "GLhalfNV": "ctypes.c_uint16",
    "GLhandleARB": "ctypes.c_uint",
    "GLint": "ctypes.c_int",
    "GLint64": "ctypes.c_int64",
    "GLint64EXT": "ctypes.c_int64",
    "GLintptr": "ctypes.c_ssize_t",
    "GLintptrARB": "ctypes.c_ssize_t",
    "GLshort": "ctypes.c_int16",
    "GLsizei": "ctypes.c_int",
    "GLsizeiptr": "ctypes.c_ssize_t",
    "GLsizeiptrARB": "ctypes.c_ssize_t",
    "GLsync": "ctypes.c_void_p",
    "GLubyte": "ctypes.c_uint8",
    "GLuint": "ctypes.c_uint",
    "GLuint64": "ctypes.c_uint64",
    "GLuint64EXT": "ctypes.c_uint64",
    "GLushort": "ctypes.c_uint16",
    "GLvdpauSurfaceNV": "ctypes.c_ssize_t",
    "GLVULKANPROCNV": "ctypes.c_void_p",
}

TYPE_HELPERS = {
    "Ptr": "ctypes.POINTER",
    "VoidPtr": "ctypes.c_void_p",
}

TYPE_VOCABULARY = frozenset(GL_TYPES) | frozenset(TYPE_HELPERS)

PYTHON_RESERVED = frozenset(keyword.kwlist) | {
    "ffi",
    "functools",
    "proc",
    "shared",
    "types",
}

SANE_PREFIXES = {"3DFX": "ThreeDFX"}
SANE_MODULES = {"422_pixels": "four_two_two_pixels"}

_NON_IDENT_RE = re.compile(r"\W")


# ===--- Registry model ---=== #


class TypeRef(NamedTuple):
    """C type of a parameter or return value; name is None for void."""

    name: str | None
    pointer: int = 0


@dataclass(frozen=True)
class Parameter:
    name: str
    type: TypeRef
    group: str | None = None
    length: str | None = None

    @property
    def py_name(self) -> str:
        if self.name in PYTHON_RESERVED:
            return self.name + "_"
        return self.name


@dataclass(frozen=True)
class Command:
    name: str
    return_type: TypeRef
    parameters: tuple[Parameter, ...] = ()
    alias: str | None = None
    vec_equiv: str | None = None


@dataclass(frozen=True)
class Enumerant:
    name: str
    value: str


@dataclass(frozen=True)
class Require:
    profile: str | None
    enums: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()


@dataclass(frozen=True)
class Remove:
    profile: str | None
    enums: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()


@dataclass(frozen=True)
class Feature:
    name: str
    api: str
    number: str
    requires: tuple[Require, ...] = ()
    removes: tuple[Remove, ...] = ()


@dataclass(frozen=True)
class Extension:
    name: str
    supported: str
    requires: tuple[Require, ...] = ()


@dataclass(frozen=True)
class Registry:
    """Typed view of gl.xml. Every collection keeps registry declaration order."""

    commands: tuple[Command, ...] = ()
    enums: tuple[Enumerant, ...] = ()
    groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    features: tuple[Feature, ...] = ()
    extensions: tuple[Extension, ...] = ()


@dataclass(frozen=True)
class DocIndex:
    """Auxiliary documentation lists.

    Attributes:
        manual_pages: Command names that have a reference page.
        extension_specs: "VENDOR/suffix" keys of extensions with a
            published specification text.
    """

    manual_pages: frozenset[str] = frozenset()
    extension_specs: frozenset[str] = frozenset()


# ===--- XML parsing ---=== #


def parse_type_ref(el: ET.Element) -> TypeRef:
    """Decode the C declaration preceding <name> in a <proto> or <param>."""
    decl = el.text or ""
    ptype = el.find("ptype")
    if ptype is not None:
        decl += (ptype.text or "") + (ptype.tail or "")
    pointer = decl.count("*")
    words = [w for w in decl.replace("*", " ").split() if w != "const"]
    name = " ".join(words) or None
    if name in ("void", "GLvoid"):
        name = None
    return TypeRef(name, pointer)


def parse_command(cmd: ET.Element) -> Command | None:
    proto = cmd.find("proto")
    if proto is None:
        return None
    name_el = proto.find("name")
    if name_el is None or not name_el.text:
        return None
    params = []
    for p in cmd.findall("param"):
        param_name = p.find("name")
        if param_name is None or not param_name.text:
            continue
        params.append(
            Parameter(
                name=param_name.text,
                type=parse_type_ref(p),
                group=p.get("group"),
                length=p.get("len"),
            )
        )
    alias_el = cmd.find("alias")
    vec_el = cmd.find("vecequiv")
    return Command(
        name=name_el.text,
        return_type=parse_type_ref(proto),
        parameters=tuple(params),
        alias=alias_el.get("name") if alias_el is not None else None,
        vec_equiv=vec_el.get("name") if vec_el is not None else None,
    )


def extract_commands(root: ET.Element) -> tuple[Command, ...]:
    commands = []
    seen: set[str] = set()
    for cmd in root.findall("commands/command"):
        parsed = parse_command(cmd)
        if parsed is None or parsed.name in seen:
            continue
        seen.add(parsed.name)
        commands.append(parsed)
    return tuple(commands)


def extract_enums(
    root: ET.Element,
) -> tuple[tuple[Enumerant, ...], dict[str, tuple[str, ...]]]:
    """Collect enumerants and their group associations.

    The first definition of an enumerant name wins; later api-specific
    redefinitions are dropped. Groups come from both the legacy <groups>
    block and the group= attribute on each <enum>.
    """
    enums: list[Enumerant] = []
    seen: set[str] = set()
    groups: dict[str, dict[str, None]] = defaultdict(dict)

    for group in root.findall("groups/group"):
        group_name = group.get("name")
        if not group_name:
            continue
        for member in group.findall("enum"):
            member_name = member.get("name")
            if member_name:
                groups[group_name][member_name] = None

    for block in root.findall("enums"):
        for val in block.findall("enum"):
            name = val.get("name")
            value = val.get("value")
            if not name or value is None:
                continue
            for group_name in (val.get("group") or "").split(","):
                if group_name:
                    groups[group_name][name] = None
            if name in seen:
                continue
            seen.add(name)
            enums.append(Enumerant(name, value))

    return tuple(enums), {name: tuple(members) for name, members in groups.items()}


def _directive_names(el: ET.Element, tag: str) -> tuple[str, ...]:
    return tuple(child.get("name", "") for child in el.findall(tag) if child.get("name"))


def parse_require(req: ET.Element) -> Require:
    return Require(
        profile=req.get("profile"),
        enums=_directive_names(req, "enum"),
        commands=_directive_names(req, "command"),
    )


def parse_remove(rm: ET.Element) -> Remove:
    return Remove(
        profile=rm.get("profile"),
        enums=_directive_names(rm, "enum"),
        commands=_directive_names(rm, "command"),
    )


def extract_features(root: ET.Element) -> tuple[Feature, ...]:
    features = []
    for feat in root.findall("feature"):
        name = feat.get("name")
        if not name:
            continue
        features.append(
            Feature(
                name=name,
                api=feat.get("api", ""),
                number=feat.get("number", ""),
                requires=tuple(parse_require(r) for r in feat.findall("require")),
                removes=tuple(parse_remove(r) for r in feat.findall("remove")),
            )
        )
    return tuple(features)


def extract_extensions(root: ET.Element) -> tuple[Extension, ...]:
    extensions = []
    for ext in root.findall("extensions/extension"):
        name = ext.get("name")
        if not name:
            continue
        extensions.append(
            Extension(
                name=name,
                supported=ext.get("supported", ""),
                requires=tuple(parse_require(r) for r in ext.findall("require")),
            )
        )
    return tuple(extensions)


def parse_registry(root: ET.Element) -> Registry:
    enums, groups = extract_enums(root)
    return Registry(
        commands=extract_commands(root),
        enums=enums,
        groups=groups,
        features=extract_features(root),
        extensions=extract_extensions(root),
    )


def load_registry(path: Path) -> Registry:
    return parse_registry(ET.parse(path).getroot())


def load_name_index(path: Path | None) -> frozenset[str]:
    """Read a one-entry-per-line index file, skipping blanks and # comments."""
    if path is None:
        return frozenset()
    names = set()
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if entry and not entry.startswith("#"):
            names.add(entry)
    return frozenset(names)


def load_doc_index(man_pages: Path | None, extension_specs: Path | None) -> DocIndex:
    return DocIndex(
        manual_pages=load_name_index(man_pages),
        extension_specs=load_name_index(extension_specs),
    )


# ===--- Symbol identity ---=== #


class SymbolKind(Enum):
    FUNCTION = "function"
    ENUMERANT = "enumerant"


class SymbolKey(NamedTuple):
    kind: SymbolKind
    name: str


def sane_enum(name: str) -> str:
    return "_".join(["GL", *name.split("_")[1:]])


def split_extension_name(name: str) -> tuple[str, str]:
    """Split GL_<VENDOR>_<suffix> into (vendor, suffix).

    Raises:
        GenerationError: MALFORMED_EXTENSION when either part is missing.
    """
    tokens = name.split("_")
    vendor = tokens[1] if len(tokens) > 1 else ""
    suffix = "_".join(tokens[2:])
    if not vendor or not suffix:
        raise GenerationError(
            "MALFORMED_EXTENSION", f"Malformed extension name: {name}"
        )
    return vendor, suffix


def module_segment(token: str) -> str:
    """Turn a registry name token into an importable module name segment.

    Leading digits get a ``_`` prefix and keywords a ``_`` suffix, so
    ``3d_vision`` becomes ``_3d_vision`` and ``async`` becomes ``async_``.
    """
    segment = _NON_IDENT_RE.sub("_", token.lower())
    if segment[:1].isdigit():
        segment = f"_{segment}"
    if keyword.iskeyword(segment):
        segment = f"{segment}_"
    return segment


def vendor_module_name(vendor: str) -> str:
    return f"{EXTENSION_PACKAGE}.{module_segment(SANE_PREFIXES.get(vendor, vendor))}"


def extension_module_name(name: str) -> str:
    """Map GL_<VENDOR>_<suffix> to glraw.extension.<vendor>.<suffix>.

    Raises:
        GenerationError: MALFORMED_EXTENSION when the name does not split
            into a vendor and a suffix.
    """
    vendor, suffix = split_extension_name(name)
    leaf = SANE_MODULES.get(suffix) or module_segment(suffix)
    return f"{vendor_module_name(vendor)}.{leaf}"


def extension_check_name(name: str) -> str:
    vendor, suffix = split_extension_name(name)
    return f"gl_{vendor}_{suffix}"


# ===--- Signatures ---=== #


@dataclass(frozen=True)
class Signature:
    params: tuple[str, ...]
    ret: str

    def __str__(self) -> str:
        return f"({', '.join(self.params)}) -> {self.ret}"


_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def type_expr(ref: TypeRef) -> str:
    """Render a TypeRef in the glraw.types vocabulary, e.g. Ptr(GLuint)."""
    if ref.name is None:
        if ref.pointer == 0:
            return "None"
        expr, depth = "VoidPtr", ref.pointer - 1
    elif ref.name.startswith("struct "):
        expr, depth = "VoidPtr", max(ref.pointer - 1, 0)
    elif ref.name in GL_TYPES:
        expr, depth = ref.name, ref.pointer
    else:
        raise GenerationError("UNKNOWN_TYPE", f"Unknown GL type: {ref.name}")
    for _ in range(depth):
        expr = f"Ptr({expr})"
    return expr


def command_signature(cmd: Command) -> Signature:
    return Signature(
        params=tuple(type_expr(p.type) for p in cmd.parameters),
        ret=type_expr(cmd.return_type),
    )


def _short_type(expr: str) -> str:
    if expr == "None":
        return "V"
    return re.sub(r"[^0-9A-Za-z]", "", expr).replace("Ptr", "P").replace("GL", "")


def common_name(sig: Signature) -> str:
    return "_".join([*(_short_type(p) for p in sig.params), _short_type(sig.ret)])


def prototype_name(sig: Signature) -> str:
    return f"dyn_{common_name(sig)}"


def references_types(doc_key: str) -> bool:
    return any(token in TYPE_VOCABULARY for token in _IDENT_RE.findall(doc_key))


def qualify_type_expr(expr: str, prefix: str = "types.") -> str:
    return _IDENT_RE.sub(
        lambda m: prefix + m.group(0) if m.group(0) in TYPE_VOCABULARY else m.group(0),
        expr,
    )


# ===--- Symbol table ---=== #


@dataclass
class Category:
    """Documentation key and owning artifacts of one symbol.

    owners is mutated only by replay and frozen before partitioning.
    """

    symbol: Command | Enumerant
    doc_key: str
    owners: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class FrozenCategory:
    symbol: Command | Enumerant
    doc_key: str
    owners: frozenset[str]

    @property
    def shared(self) -> bool:
        return len(self.owners) > 1


def symbol_key(symbol: Command | Enumerant) -> SymbolKey:
    if isinstance(symbol, Command):
        return SymbolKey(SymbolKind.FUNCTION, symbol.name)
    if isinstance(symbol, Enumerant):
        return SymbolKey(SymbolKind.ENUMERANT, sane_enum(symbol.name))
    raise TypeError(f"Not a registry symbol: {symbol!r}")


def documentation_key(symbol: Command | Enumerant) -> str:
    if isinstance(symbol, Command):
        return str(command_signature(symbol))
    if isinstance(symbol, Enumerant):
        return symbol.value
    raise TypeError(f"Not a registry symbol: {symbol!r}")


def build_symbol_table(registry: Registry) -> dict[SymbolKey, Category]:
    """Insert one Category per command, then per enumerant, with no owners."""
    table: dict[SymbolKey, Category] = {}
    for cmd in registry.commands:
        table[symbol_key(cmd)] = Category(cmd, documentation_key(cmd))
    for enum in registry.enums:
        table[symbol_key(enum)] = Category(enum, documentation_key(enum))
    return table


def freeze_symbol_table(
    table: Mapping[SymbolKey, Category],
) -> Mapping[SymbolKey, FrozenCategory]:
    return MappingProxyType(
        {
            key: FrozenCategory(category.symbol, category.doc_key, frozenset(category.owners))
            for key, category in table.items()
        }
    )


# ===--- Profile table ---=== #

ANY_PROFILE = "*"


@dataclass(frozen=True)
class ProfileTarget:
    """Artifact receiving a feature's symbols under one profile.

    Attributes:
        artifact: Module that gains required symbols and loses removed ones.
        fallback: Module that receives removed symbols instead, if any.
        also: Extra modules that gain every required symbol.
    """

    artifact: str
    fallback: str | None = None
    also: tuple[str, ...] = ()


def profile_artifact(leaf: str) -> str:
    return f"{PROFILE_PACKAGE}.{leaf}"


def _standard_row(leaf: str) -> dict[str | None, ProfileTarget]:
    # Pre-3.2 desktop features stay available under every core profile.
    return {
        ANY_PROFILE: ProfileTarget(
            profile_artifact(leaf), also=(profile_artifact("core32"),)
        )
    }


def _layered_row(suffix: str) -> dict[str | None, ProfileTarget]:
    core = profile_artifact(f"core{suffix}")
    compatibility = profile_artifact(f"compatibility{suffix}")
    return {
        None: ProfileTarget(core),
        "core": ProfileTarget(core, fallback=compatibility),
        "compatibility": ProfileTarget(compatibility),
    }


def _single_row(leaf: str) -> dict[str | None, ProfileTarget]:
    return {ANY_PROFILE: ProfileTarget(profile_artifact(leaf))}


STANDARD_CHAIN = (
    "standard10",
    "standard11",
    "standard12",
    "standard13",
    "standard14",
    "standard15",
    "standard20",
    "standard21",
    "standard30",
    "standard31",
)
LAYERED_VERSIONS = ("32", "33", "40", "41", "42", "43", "44", "45", "46")
EMBEDDED_CHAIN = ("embedded20", "embedded30", "embedded31", "embedded32")

PROFILE_TABLE: dict[str, dict[str | None, ProfileTarget]] = {
    **{
        f"GL_VERSION_{leaf[-2]}_{leaf[-1]}": _standard_row(leaf)
        for leaf in STANDARD_CHAIN
    },
    **{
        f"GL_VERSION_{suffix[0]}_{suffix[1]}": _layered_row(suffix)
        for suffix in LAYERED_VERSIONS
    },
    "GL_VERSION_ES_CM_1_0": {
        "common": ProfileTarget(profile_artifact("embedded_common11")),
        ANY_PROFILE: ProfileTarget(profile_artifact("embedded_lite11")),
    },
    **{
        f"GL_ES_VERSION_{leaf[-2]}_{leaf[-1]}": _single_row(leaf)
        for leaf in EMBEDDED_CHAIN
    },
    "GL_SC_VERSION_2_0": _single_row("safety_critical20"),
}


def profile_target(feature: str, profile: str | None) -> ProfileTarget:
    """Look up the artifact for a (feature, profile) pair.

    Raises:
        GenerationError: UNKNOWN_PROFILE_MAPPING when the pair is not in
            PROFILE_TABLE.
    """
    row = PROFILE_TABLE.get(feature, {})
    if profile in row:
        return row[profile]
    if ANY_PROFILE in row:
        return row[ANY_PROFILE]
    raise GenerationError(
        "UNKNOWN_PROFILE_MAPPING",
        f"No artifact mapping for feature {feature} with profile {profile or '(none)'}",
    )


def _profile_artifacts() -> tuple[str, ...]:
    names: set[str] = set()
    for row in PROFILE_TABLE.values():
        for target in row.values():
            names.add(target.artifact)
            names.update(target.also)
            if target.fallback is not None:
                names.add(target.fallback)
    return tuple(sorted(names))


PROFILE_ARTIFACTS: tuple[str, ...] = _profile_artifacts()


def _build_implicit_preludes() -> dict[str, tuple[str, ...]]:
    preludes: dict[str, tuple[str, ...]] = {}
    for chain in (STANDARD_CHAIN, EMBEDDED_CHAIN):
        for previous, current in zip(chain, chain[1:]):
            preludes[profile_artifact(current)] = (profile_artifact(previous),)
    for previous, current in zip(LAYERED_VERSIONS, LAYERED_VERSIONS[1:]):
        preludes[profile_artifact(f"core{current}")] = (
            profile_artifact(f"core{previous}"),
        )
        preludes[profile_artifact(f"compatibility{current}")] = (
            profile_artifact(f"compatibility{previous}"),
            profile_artifact(f"core{current}"),
        )
    first = LAYERED_VERSIONS[0]
    preludes[profile_artifact(f"compatibility{first}")] = (
        profile_artifact(f"core{first}"),
    )
    preludes[profile_artifact("embedded_common11")] = (
        profile_artifact("embedded_lite11"),
    )
    return preludes


IMPLICIT_PRELUDES: dict[str, tuple[str, ...]] = _build_implicit_preludes()
"""Artifacts each profile module re-exports wholesale (profile inheritance)."""

META_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "GL_ANDROID_extension_pack_es31a": (
        "GL_KHR_debug",
        "GL_KHR_texture_compression_astc_ldr",
        "GL_KHR_blend_equation_advanced",
        "GL_OES_sample_shading",
        "GL_OES_sample_variables",
        "GL_OES_shader_image_atomic",
        "GL_OES_shader_multisample_interpolation",
        "GL_OES_texture_stencil8",
        "GL_OES_texture_storage_multisample_2d_array",
        "GL_EXT_copy_image",
        "GL_EXT_draw_buffers_indexed",
        "GL_EXT_geometry_shader",
        "GL_EXT_gpu_shader5",
        "GL_EXT_primitive_bounding_box",
        "GL_EXT_shader_io_blocks",
        "GL_EXT_tessellation_shader",
        "GL_EXT_texture_border_clamp",
        "GL_EXT_texture_buffer",
        "GL_EXT_texture_cube_map_array",
        "GL_EXT_texture_sRGB_decode",
    ),
}
"""Extensions defined purely as a bundle of other extensions."""


def implicit_prelude(artifact: str, extension: str | None = None) -> tuple[str, ...]:
    if extension is not None and extension in META_EXTENSIONS:
        return tuple(extension_module_name(name) for name in META_EXTENSIONS[extension])
    return IMPLICIT_PRELUDES.get(artifact, ())


# ===--- Require/remove replay ---=== #


@dataclass(frozen=True)
class RequireEvent:
    source: str
    artifacts: tuple[str, ...]
    keys: tuple[SymbolKey, ...]


@dataclass(frozen=True)
class RemoveEvent:
    source: str
    artifact: str
    fallback: str | None
    keys: tuple[SymbolKey, ...]


def directive_keys(entry: Require | Remove) -> tuple[SymbolKey, ...]:
    return (
        *(SymbolKey(SymbolKind.ENUMERANT, sane_enum(name)) for name in entry.enums),
        *(SymbolKey(SymbolKind.FUNCTION, name) for name in entry.commands),
    )


def build_replay_events(registry: Registry) -> tuple[RequireEvent | RemoveEvent, ...]:
    """Flatten the registry into the ordered list of ownership mutations.

    Extensions come first. Each feature then contributes all of its requires
    before its removes, and features keep registry order, so a remove only
    ever sees the requires already applied to its profile.

    Raises:
        GenerationError: UNKNOWN_PROFILE_MAPPING or MALFORMED_EXTENSION.
    """
    events: list[RequireEvent | RemoveEvent] = []
    for ext in registry.extensions:
        artifact = extension_module_name(ext.name)
        for req in ext.requires:
            events.append(RequireEvent(ext.name, (artifact,), directive_keys(req)))
    for feature in registry.features:
        for req in feature.requires:
            target = profile_target(feature.name, req.profile)
            events.append(
                RequireEvent(
                    feature.name,
                    (target.artifact, *target.also),
                    directive_keys(req),
                )
            )
        for rm in feature.removes:
            target = profile_target(feature.name, rm.profile)
            events.append(
                RemoveEvent(
                    feature.name, target.artifact, target.fallback, directive_keys(rm)
                )
            )
    return tuple(events)


def replay(
    table: Mapping[SymbolKey, Category],
    events: Iterable[RequireEvent | RemoveEvent],
    *,
    strict: bool = True,
) -> tuple[str, ...]:
    """Apply events to the owning sets of table, in order.

    Args:
        table: Mutable symbol table from build_symbol_table.
        events: Ordered events from build_replay_events.
        strict: Raise on references to symbols missing from table. When
            False, those references are skipped and reported instead.

    Returns:
        Descriptions of skipped dangling references (empty when strict).

    Raises:
        GenerationError: DANGLING_REFERENCE in strict mode.
    """
    dangling: list[str] = []
    for event in events:
        for key in event.keys:
            category = table.get(key)
            if category is None:
                dangling.append(
                    f"{event.source} references unknown {key.kind.value} {key.name}"
                )
                continue
            if isinstance(event, RequireEvent):
                category.owners.update(event.artifacts)
            elif isinstance(event, RemoveEvent):
                category.owners.discard(event.artifact)
                if event.fallback is not None:
                    category.owners.add(event.fallback)
            else:
                raise TypeError(f"Not a replay event: {event!r}")

    if dangling and strict:
        shown = "; ".join(dangling[:5])
        more = f" (and {len(dangling) - 5} more)" if len(dangling) > 5 else ""
        raise GenerationError(
            "DANGLING_REFERENCE",
            f"{len(dangling)} dangling symbol reference(s): {shown}{more}",
        )
    return tuple(dangling)


# ===--- Partitioning ---=== #


@dataclass(frozen=True)
class Membership:
    shared: bool
    key: SymbolKey
    doc_key: str


@dataclass(frozen=True)
class Artifact:
    """One generated module and the symbols it exports.

    Attributes:
        name: Dotted module name, e.g. "glraw.profile.core33".
        members: Symbols in symbol-table order.
        prelude: Modules re-exported wholesale ahead of the members.
        extension: Extension name for extension modules, else None.
    """

    name: str
    members: tuple[Membership, ...]
    prelude: tuple[str, ...] = ()
    extension: str | None = None


def extension_artifact_names(registry: Registry) -> dict[str, str]:
    """Map each extension module name to its extension, rejecting collisions."""
    names: dict[str, str] = {}
    for ext in registry.extensions:
        artifact = extension_module_name(ext.name)
        previous = names.get(artifact)
        if previous is not None and previous != ext.name:
            raise GenerationError(
                "ARTIFACT_NAME_COLLISION",
                f"Extensions {previous} and {ext.name} both map to {artifact}",
            )
        names[artifact] = ext.name
    return names


def partition_artifacts(
    registry: Registry,
    symbols: Mapping[SymbolKey, FrozenCategory],
) -> tuple[Artifact, ...]:
    """Invert symbol ownership into per-module membership lists.

    Every extension and profile module is registered up front so modules
    with no members are still generated.

    Args:
        registry: Parsed registry, used for the extension module names.
        symbols: Frozen symbol table after replay.

    Returns:
        Artifacts sorted by name, members in symbol table order.

    Raises:
        GenerationError: MALFORMED_EXTENSION or ARTIFACT_NAME_COLLISION for
            extensions that do not map to a unique module.
    """
    extensions = extension_artifact_names(registry)
    memberships: dict[str, list[Membership]] = {name: [] for name in extensions}
    for name in PROFILE_ARTIFACTS:
        memberships.setdefault(name, [])

    for key, category in symbols.items():
        for owner in sorted(category.owners):
            memberships.setdefault(owner, []).append(
                Membership(category.shared, key, category.doc_key)
            )

    artifacts = []
    for name in sorted(memberships):
        extension = extensions.get(name)
        artifacts.append(
            Artifact(
                name=name,
                members=tuple(memberships[name]),
                prelude=implicit_prelude(name, extension),
                extension=extension,
            )
        )
    return tuple(artifacts)


def validate_preludes(artifacts: Iterable[Artifact]) -> None:
    artifacts = tuple(artifacts)
    known = {artifact.name for artifact in artifacts}
    for artifact in artifacts:
        for module in artifact.prelude:
            if module not in known:
                raise GenerationError(
                    "UNKNOWN_ARTIFACT",
                    f"{artifact.name} re-exports {module}, which is not generated",
                )


# ===--- Links and bindings ---=== #


@dataclass(frozen=True)
class Link:
    """Where documentation should point for a symbol; module None means nowhere."""

    name: str
    module: str | None
    role: str

    def render(self) -> str:
        if self.module is None:
            return f"``{self.name}``"
        return f":{self.role}:`~{self.module}.{self.name}`"


def _role(key: SymbolKey) -> str:
    return "func" if key.kind is SymbolKind.FUNCTION else "data"


def link_for(key: SymbolKey, category: FrozenCategory) -> Link:
    if not category.owners:
        module = None
    elif key.kind is SymbolKind.FUNCTION and category.shared:
        module = SHARED_MODULE
    else:
        module = min(category.owners)
    return Link(key.name, module, _role(key))


def build_links(symbols: Mapping[SymbolKey, FrozenCategory]) -> dict[SymbolKey, Link]:
    return {key: link_for(key, category) for key, category in symbols.items()}


def resolve_link(links: Mapping[SymbolKey, Link], key: SymbolKey) -> Link:
    return links.get(key) or Link(key.name, None, _role(key))


def _paragraph(text: str) -> str:
    return textwrap.fill(
        text, width=72, break_long_words=False, break_on_hyphens=False
    )


def describe_command(
    cmd: Command,
    links: Mapping[SymbolKey, Link],
    groups: Mapping[str, tuple[str, ...]],
    manual_pages: frozenset[str] = frozenset(),
) -> str:
    """Build the reST docstring body for a command binding."""
    args = ", ".join(p.py_name for p in cmd.parameters)
    paragraphs = [f"Usage: ``{cmd.name}({args})``"]

    for param in cmd.parameters:
        if param.group is None:
            continue
        members = groups.get(param.group)
        if members:
            targets = ", ".join(
                resolve_link(links, SymbolKey(SymbolKind.ENUMERANT, sane_enum(m))).render()
                for m in members
            )
            paragraphs.append(
                f"The parameter ``{param.name}`` is a ``{param.group}``, one of: {targets}."
            )
        else:
            paragraphs.append(f"The parameter ``{param.name}`` is a ``{param.group}``.")

    for param in cmd.parameters:
        if param.length is not None:
            paragraphs.append(
                f"The length of ``{param.name}`` should be ``{param.length}``."
            )

    if cmd.alias is not None:
        target = resolve_link(links, SymbolKey(SymbolKind.FUNCTION, cmd.alias))
        paragraphs.append(f"This command is an alias for {target.render()}.")
    if cmd.vec_equiv is not None:
        target = resolve_link(links, SymbolKey(SymbolKind.FUNCTION, cmd.vec_equiv))
        paragraphs.append(
            f"The vector equivalent of this command is {target.render()}."
        )
    if cmd.name in manual_pages:
        paragraphs.append(f"Manual page: <{MANUAL_PAGE_URL.format(name=cmd.name)}>")

    return "\n\n".join(_paragraph(p) for p in paragraphs)


# ===--- Declarations ---=== #


@dataclass(frozen=True)
class BindingDef:
    """A call-through wrapper plus its lazily resolved function pointer."""

    name: str
    parameters: tuple[Parameter, ...]
    signature: Signature
    doc: str

    @property
    def pointer_name(self) -> str:
        return f"{self.name}FunPtr"


@dataclass(frozen=True)
class ConstantDef:
    name: str
    value: str


@dataclass(frozen=True)
class SharedReExport:
    name: str


@dataclass(frozen=True)
class ModuleReExport:
    module: str


@dataclass(frozen=True)
class ExtensionCheckDef:
    name: str
    extension: str
    doc: str


@dataclass(frozen=True)
class PrototypeDef:
    name: str
    signature: Signature


@dataclass(frozen=True)
class RawCode:
    lines: tuple[str, ...]


Declaration = (
    BindingDef
    | ConstantDef
    | SharedReExport
    | ModuleReExport
    | ExtensionCheckDef
    | PrototypeDef
    | RawCode
)


@dataclass(frozen=True)
class Section:
    """One titled block of a module's export list.

    modules are re-exported wholesale and listed before names.
    """

    title: str
    modules: tuple[str, ...] = ()
    names: tuple[str, ...] = ()


@dataclass(frozen=True)
class ModuleSource:
    name: str
    doc: str
    imports: tuple[str, ...]
    sections: tuple[Section, ...]
    body: tuple[Declaration, ...]


def synthesize_bindings(
    registry: Registry,
    symbols: Mapping[SymbolKey, FrozenCategory],
    links: Mapping[SymbolKey, Link],
    doc_index: DocIndex = DocIndex(),
) -> dict[SymbolKey, BindingDef]:
    """Build exactly one binding per function that some module exports."""
    bindings: dict[SymbolKey, BindingDef] = {}
    for key, category in symbols.items():
        if key.kind is not SymbolKind.FUNCTION or not category.owners:
            continue
        cmd = category.symbol
        bindings[key] = BindingDef(
            name=cmd.name,
            parameters=cmd.parameters,
            signature=command_signature(cmd),
            doc=describe_command(cmd, links, registry.groups, doc_index.manual_pages),
        )
    return bindings


def build_shared_artifact(symbols: Mapping[SymbolKey, FrozenCategory]) -> Artifact:
    """Collect every shared function into the shared module.

    Members are marked exclusive so the assembler defines them here.
    Shared enumerants stay with their owners.
    """
    members = tuple(
        Membership(False, key, category.doc_key)
        for key, category in symbols.items()
        if key.kind is SymbolKind.FUNCTION and category.shared
    )
    return Artifact(name=SHARED_MODULE, members=members)


def build_ffi_module(bindings: Iterable[BindingDef]) -> ModuleSource:
    prototypes: dict[str, Signature] = {}
    for binding in bindings:
        name = prototype_name(binding.signature)
        existing = prototypes.setdefault(name, binding.signature)
        if existing != binding.signature:
            raise RuntimeError(
                f"Prototype name {name} covers both {existing} and {binding.signature}"
            )
    names = tuple(sorted(prototypes))
    return ModuleSource(
        name=FFI_MODULE,
        doc="ctypes prototypes, one per distinct command signature.",
        imports=("ctypes", TYPES_MODULE),
        sections=(Section("Prototypes", names=names),),
        body=tuple(PrototypeDef(name, prototypes[name]) for name in names),
    )


def build_types_module() -> ModuleSource:
    names = (*TYPE_HELPERS, *sorted(GL_TYPES))
    values = {**TYPE_HELPERS, **GL_TYPES}
    return ModuleSource(
        name=TYPES_MODULE,
        doc="ctypes equivalents of the OpenGL C types.",
        imports=("ctypes",),
        sections=(Section("Types", names=names),),
        body=tuple(ConstantDef(name, values[name]) for name in names),
    )


_PROC_SOURCE = '''\
_GL_EXTENSIONS = 0x1F03
_GL_NUM_EXTENSIONS = 0x821D


class MissingFunctionError(RuntimeError):
    """Raised when the OpenGL library does not provide an entry point."""


@functools.cache
def library():
    if sys.platform.startswith("win"):
        return ctypes.WinDLL("opengl32")
    if sys.platform == "darwin":
        return ctypes.CDLL("/System/Library/Frameworks/OpenGL.framework/OpenGL")
    name = ctypes.util.find_library("GL")
    if name is None:
        raise OSError("Could not locate the OpenGL library")
    return ctypes.CDLL(name)


@functools.cache
def _context_loader():
    lib = library()
    for symbol in ("wglGetProcAddress", "glXGetProcAddressARB", "glXGetProcAddress"):
        loader = getattr(lib, symbol, None)
        if loader is not None:
            loader.restype = ctypes.c_void_p
            loader.argtypes = [ctypes.c_char_p]
            return loader
    return None


def get_proc_address(name: str) -> int:
    """Return the address of the named entry point."""
    loader = _context_loader()
    address = loader(name.encode("ascii")) if loader is not None else None
    if not address:
        try:
            address = ctypes.cast(getattr(library(), name), ctypes.c_void_p).value
        except AttributeError:
            address = None
    if not address:
        raise MissingFunctionError(f"OpenGL function {name} is not available")
    return address


@functools.cache
def extensions() -> frozenset[str]:
    """Return the extension names reported by the current context."""
    get_integerv = ctypes.CFUNCTYPE(None, ctypes.c_uint, ctypes.POINTER(ctypes.c_int))(
        get_proc_address("glGetIntegerv")
    )
    count = ctypes.c_int(0)
    get_integerv(_GL_NUM_EXTENSIONS, ctypes.byref(count))
    if count.value:
        get_stringi = ctypes.CFUNCTYPE(ctypes.c_char_p, ctypes.c_uint, ctypes.c_uint)(
            get_proc_address("glGetStringi")
        )
        return frozenset(
            get_stringi(_GL_EXTENSIONS, index).decode("ascii")
            for index in range(count.value)
        )
    get_string = ctypes.CFUNCTYPE(ctypes.c_char_p, ctypes.c_uint)(
        get_proc_address("glGetString")
    )
    return frozenset((get_string(_GL_EXTENSIONS) or b"").decode("ascii").split())'''


def build_proc_module() -> ModuleSource:
    return ModuleSource(
        name=PROC_MODULE,
        doc="Native entry point lookup and extension queries.",
        imports=("ctypes", "ctypes.util", "functools", "sys"),
        sections=(
            Section(
                "Runtime",
                names=(
                    "MissingFunctionError",
                    "extensions",
                    "get_proc_address",
                    "library",
                ),
            ),
        ),
        body=(RawCode(tuple(_PROC_SOURCE.splitlines())),),
    )


# ===--- Assembly ---=== #


def compute_imports(artifact: Artifact) -> tuple[str, ...]:
    """Derive the modules an artifact depends on from what it defines.

    Shared enumerants are defined locally, so only shared functions pull in
    the shared module.

    Returns:
        Sorted module names, stdlib and package modules mixed.
    """
    exclusive_functions = [
        m for m in artifact.members if not m.shared and m.key.kind is SymbolKind.FUNCTION
    ]
    has_shared_function = any(
        m.shared and m.key.kind is SymbolKind.FUNCTION for m in artifact.members
    )
    has_check = artifact.extension is not None

    imports: set[str] = set()
    if has_shared_function:
        imports.add(SHARED_MODULE)
    if any(references_types(m.doc_key) for m in exclusive_functions):
        imports.add(TYPES_MODULE)
    if exclusive_functions or has_check:
        imports.update(("functools", PROC_MODULE))
    if exclusive_functions:
        imports.add(FFI_MODULE)
    return tuple(sorted(imports))


_INT_LITERAL_RE = re.compile(r"^-?(0[xX][0-9A-Fa-f]+|0|[1-9][0-9]*)$")


def member_declaration(
    member: Membership, bindings: Mapping[SymbolKey, BindingDef]
) -> Declaration:
    if member.key.kind is SymbolKind.FUNCTION:
        if member.shared:
            return SharedReExport(member.key.name)
        return bindings[member.key]
    if member.key.kind is SymbolKind.ENUMERANT:
        if not _INT_LITERAL_RE.match(member.doc_key):
            raise GenerationError(
                "INVALID_ENUM_VALUE",
                f"{member.key.name} has a non-integer value: {member.doc_key!r}",
            )
        return ConstantDef(member.key.name, member.doc_key)
    raise TypeError(f"Unknown symbol kind: {member.key.kind!r}")


def extension_check(extension: str, doc_index: DocIndex = DocIndex()) -> ExtensionCheckDef:
    vendor, suffix = split_extension_name(extension)
    if f"{vendor}/{suffix}" in doc_index.extension_specs:
        url = EXTENSION_SPEC_URL.format(vendor=vendor, suffix=suffix)
        label = f"`{extension} <{url}>`_"
    else:
        label = f"``{extension}``"
    return ExtensionCheckDef(
        name=extension_check_name(extension),
        extension=extension,
        doc=f"Checks that the {label} extension is available.",
    )


def describe_artifact(artifact: Artifact) -> str:
    if artifact.extension is not None:
        return f"Bindings for the {artifact.extension} extension."
    if artifact.name == SHARED_MODULE:
        return "Function bindings exported by more than one module."
    return f"Bindings for the {artifact.name.rsplit('.', 1)[-1]} profile."


def assemble_artifact(
    artifact: Artifact,
    bindings: Mapping[SymbolKey, BindingDef],
    doc_index: DocIndex = DocIndex(),
) -> ModuleSource:
    """Lay out one artifact: prelude re-exports, extension check, members.

    Args:
        artifact: Partitioned artifact to lay out.
        bindings: Synthesized bindings for every exported function.
        doc_index: Extension specification names for the check docstring.

    Returns:
        ModuleSource with imports from compute_imports.

    Raises:
        GenerationError: INVALID_ENUM_VALUE for an enumerant value that is
            not an integer literal.
    """
    body: list[Declaration] = [ModuleReExport(module) for module in artifact.prelude]
    sections: list[Section] = []

    if artifact.extension is not None:
        check = extension_check(artifact.extension, doc_index)
        body.append(check)
        sections.append(Section("Extension Support", names=(check.name,)))

    body.extend(member_declaration(m, bindings) for m in artifact.members)
    sections.append(
        Section(
            title=artifact.extension or artifact.name,
            modules=artifact.prelude,
            names=tuple(m.key.name for m in artifact.members),
        )
    )
    return ModuleSource(
        name=artifact.name,
        doc=describe_artifact(artifact),
        imports=compute_imports(artifact),
        sections=tuple(sections),
        body=tuple(body),
    )


def aggregate_extension_groups(
    artifacts: Iterable[Artifact],
) -> tuple[ModuleSource, ...]:
    """Build one re-export module per vendor plus the top-level extension module.

    Returns:
        Vendor modules sorted by vendor token, then the top-level module.
    """
    by_vendor: dict[str, list[str]] = defaultdict(list)
    for artifact in artifacts:
        if artifact.extension is None:
            continue
        vendor, _ = split_extension_name(artifact.extension)
        by_vendor[vendor].append(artifact.name)

    groups = []
    for vendor in sorted(by_vendor):
        modules = tuple(sorted(by_vendor[vendor]))
        groups.append(
            ModuleSource(
                name=vendor_module_name(vendor),
                doc=f"Re-exports every {vendor} extension.",
                imports=(),
                sections=(Section(f"{vendor} Extensions", modules=modules),),
                body=tuple(ModuleReExport(m) for m in modules),
            )
        )

    group_names = tuple(g.name for g in groups)
    top = ModuleSource(
        name=EXTENSION_PACKAGE,
        doc="Re-exports every extension, grouped by vendor.",
        imports=(),
        sections=(Section("Extensions", modules=group_names),),
        body=tuple(ModuleReExport(name) for name in group_names),
    )
    return (*groups, top)


def package_names(module_names: Iterable[str]) -> frozenset[str]:
    packages: set[str] = set()
    for name in module_names:
        parts = name.split(".")
        for index in range(1, len(parts)):
            packages.add(".".join(parts[:index]))
    return frozenset(packages)


def complete_package_tree(modules: Iterable[ModuleSource]) -> tuple[ModuleSource, ...]:
    """Add docstring-only modules for packages that have no module of their own."""
    modules = tuple(modules)
    present = {m.name for m in modules}
    missing = sorted(package_names(present) - present)
    filler = tuple(
        ModuleSource(
            name=name,
            doc="Raw OpenGL bindings." if name == PACKAGE_ROOT else f"The {name} package.",
            imports=(),
            sections=(),
            body=(),
        )
        for name in missing
    )
    return (*modules, *filler)


# ===--- Pipeline ---=== #


@dataclass(frozen=True)
class GenerationResult:
    """Everything one run computed, before rendering.

    Attributes:
        modules: Every module to write, sorted by name.
        artifacts: Partitioned profile and extension artifacts.
        symbols: Frozen symbol table.
        dangling: Dangling references skipped in lenient mode.
    """

    modules: tuple[ModuleSource, ...]
    artifacts: tuple[Artifact, ...]
    symbols: Mapping[SymbolKey, FrozenCategory]
    dangling: tuple[str, ...] = ()


def generate_modules(
    registry: Registry,
    doc_index: DocIndex = DocIndex(),
    *,
    strict: bool = True,
) -> GenerationResult:
    """Run symbol table, replay, partition, synthesis and assembly.

    Args:
        registry: Parsed gl.xml registry.
        doc_index: Manual page and extension specification names.
        strict: Reject dangling references instead of reporting them.

    Returns:
        GenerationResult with the module tree sorted by name.

    Raises:
        GenerationError: Any registry-level failure, see
            VALID_GENERATION_ERROR_CODES.
    """
    table = build_symbol_table(registry)
    dangling = replay(table, build_replay_events(registry), strict=strict)
    symbols = freeze_symbol_table(table)

    artifacts = partition_artifacts(registry, symbols)
    validate_preludes(artifacts)

    links = build_links(symbols)
    bindings = synthesize_bindings(registry, symbols, links, doc_index)

    modules: list[ModuleSource] = [
        build_types_module(),
        build_proc_module(),
        build_ffi_module(bindings.values()),
        assemble_artifact(build_shared_artifact(symbols), bindings, doc_index),
    ]
    modules.extend(assemble_artifact(a, bindings, doc_index) for a in artifacts)
    modules.extend(aggregate_extension_groups(artifacts))

    completed = complete_package_tree(modules)
    return GenerationResult(
        modules=tuple(sorted(completed, key=lambda m: m.name)),
        artifacts=artifacts,
        symbols=symbols,
        dangling=dangling,
    )


# ===--- Rendering ---=== #

_HEADER_BORDER: str = "# x-------------------------------------------x #"


@dataclass(frozen=True)
class WriteConfig:
    """Generation metadata embedded in every file header.

    Attributes:
        source_label: Registry label, e.g. "gl.xml".
    """

    source_label: str


def format_file_header(config: WriteConfig, module: str) -> list[str]:
    if not config.source_label:
        raise ValueError("source_label must not be empty")
    return [
        _HEADER_BORDER,
        "# | Raw OpenGL bindings for Python",
        "# | Generated by gl-raw-bindings-gen",
        f"# | Source: {config.source_label}",
        f"# | Module: {module}",
        _HEADER_BORDER,
    ]


def collect_exports(modules: Iterable[ModuleSource]) -> dict[str, tuple[str, ...]]:
    """Flatten each module's sections into its __all__ names.

    Raises:
        GenerationError: UNKNOWN_ARTIFACT when a section re-exports a module
            that is not in modules.
        RuntimeError: If re-exports form a cycle.
    """
    by_name = {m.name: m for m in modules}
    resolved: dict[str, tuple[str, ...]] = {}

    def _resolve(name: str, stack: frozenset[str]) -> tuple[str, ...]:
        if name in resolved:
            return resolved[name]
        if name in stack:
            raise RuntimeError(f"Re-export cycle through {name}")
        module = by_name.get(name)
        if module is None:
            raise GenerationError("UNKNOWN_ARTIFACT", f"Unknown module: {name}")
        seen: dict[str, None] = {}
        for section in module.sections:
            for other in section.modules:
                for export in _resolve(other, stack | {name}):
                    seen.setdefault(export, None)
            for export in section.names:
                seen.setdefault(export, None)
        resolved[name] = tuple(seen)
        return resolved[name]

    for name in by_name:
        _resolve(name, frozenset())
    return resolved


def _docstring(text: str, indent: str = "") -> list[str]:
    lines = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').splitlines()
    if len(lines) <= 1:
        return [f'{indent}"""{lines[0] if lines else ""}"""']
    out = [f'{indent}"""{lines[0]}']
    out.extend(f"{indent}{line}" if line else "" for line in lines[1:])
    out.append(f'{indent}"""')
    return out


def format_import_block(imports: Iterable[str]) -> list[str]:
    """Render imports: stdlib first, then package modules, blank line between."""
    imports = tuple(imports)
    external = [name for name in imports if not name.startswith(PACKAGE_ROOT + ".")]
    internal = [name for name in imports if name.startswith(PACKAGE_ROOT + ".")]
    lines = [f"import {name}" for name in external]
    if external and internal:
        lines.append("")
    for name in internal:
        parent, leaf = name.rsplit(".", 1)
        lines.append(f"from {parent} import {leaf}")
    return lines


def render_declaration(decl: Declaration) -> list[str]:
    if isinstance(decl, ConstantDef):
        return [f"{decl.name} = {decl.value}"]
    if isinstance(decl, SharedReExport):
        return [f"{decl.name} = shared.{decl.name}"]
    if isinstance(decl, PrototypeDef):
        args = ", ".join(
            [qualify_type_expr(decl.signature.ret)]
            + [qualify_type_expr(p) for p in decl.signature.params]
        )
        return [f"{decl.name} = ctypes.CFUNCTYPE({args})"]
    if isinstance(decl, BindingDef):
        params = ", ".join(
            f"{p.py_name}: {qualify_type_expr(t)}"
            for p, t in zip(decl.parameters, decl.signature.params)
        )
        args = ", ".join(p.py_name for p in decl.parameters)
        ret = qualify_type_expr(decl.signature.ret)
        return [
            f"def {decl.name}({params}) -> {ret}:",
            *_docstring(decl.doc, "    "),
            f"    return {decl.pointer_name}()({args})",
            "",
            "",
            "@functools.cache",
            f"def {decl.pointer_name}():",
            f"    return ffi.{prototype_name(decl.signature)}(",
            f'        proc.get_proc_address("{decl.name}")',
            "    )",
        ]
    if isinstance(decl, ExtensionCheckDef):
        return [
            "@functools.cache",
            f"def {decl.name}() -> bool:",
            *_docstring(decl.doc, "    "),
            f'    return "{decl.extension}" in proc.extensions()',
        ]
    if isinstance(decl, RawCode):
        return list(decl.lines)
    raise TypeError(f"Cannot render declaration: {decl!r}")


_COMPACT_DECLARATIONS = (ConstantDef, SharedReExport, PrototypeDef)


def render_module(
    config: WriteConfig,
    module: ModuleSource,
    exports: Mapping[str, tuple[str, ...]],
) -> str:
    """Render a ModuleSource to Python source text with a trailing newline.

    Layout: header, docstring, imports, prelude re-exports, __all__, then
    definitions. Consecutive one-line definitions are packed together;
    anything else is separated by two blank lines.
    """
    parts: list[str] = list(format_file_header(config, module.name))
    parts.extend(_docstring(module.doc))
    parts.extend(["", "from __future__ import annotations"])

    import_lines = format_import_block(module.imports)
    if import_lines:
        parts.append("")
        parts.extend(import_lines)

    re_exports = [d for d in module.body if isinstance(d, ModuleReExport)]
    if re_exports:
        parts.append("")
        parts.extend(f"from {d.module} import *  # noqa: F401,F403" for d in re_exports)

    parts.append("")
    parts.extend(_render_all(module, exports))

    previous_compact: bool | None = None
    for decl in module.body:
        if isinstance(decl, ModuleReExport):
            continue
        compact = isinstance(decl, _COMPACT_DECLARATIONS)
        if previous_compact is None or not (compact and previous_compact):
            parts.extend(["", ""])
        parts.extend(render_declaration(decl))
        previous_compact = compact

    return "\n".join(parts) + "\n"


def _render_all(module: ModuleSource, exports: Mapping[str, tuple[str, ...]]) -> list[str]:
    lines: list[str] = []
    emitted: set[str] = set()
    for section in module.sections:
        names: list[str] = []
        for other in section.modules:
            names.extend(exports.get(other, ()))
        names.extend(section.names)
        fresh = [n for n in dict.fromkeys(names) if n not in emitted]
        if not fresh:
            continue
        lines.append(f"    # {section.title}")
        lines.extend(f'    "{name}",' for name in fresh)
        emitted.update(fresh)
    if not lines:
        return ["__all__ = []"]
    return ["__all__ = [", *lines, "]"]


# ===--- Writer ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing one generated module.

    Attributes:
        module: Dotted module name.
        path: Absolute path of the written file.
        line_count: Newline characters in the written content.
        byte_count: UTF-8 bytes written.
    """

    module: str
    path: Path
    line_count: int
    byte_count: int


@dataclass(frozen=True)
class PackageWriteResult:
    output_dir: Path
    files: tuple[FileWriteResult, ...]

    @property
    def total_lines(self) -> int:
        """Sum of line_count across all written files."""
        return sum(f.line_count for f in self.files)


def module_path(name: str, packages: frozenset[str]) -> Path:
    parts = name.split(".")
    if name in packages:
        return Path(*parts, "__init__.py")
    return Path(*parts[:-1], f"{parts[-1]}.py")


def write_module(
    output_dir: Path,
    config: WriteConfig,
    module: ModuleSource,
    exports: Mapping[str, tuple[str, ...]],
    packages: frozenset[str],
) -> FileWriteResult:
    """Write one module below output_dir, creating parent directories.

    Raises:
        OSError: Propagated directly if the filesystem write fails.
    """
    content = render_module(config, module, exports)
    file_path = Path(output_dir) / module_path(module.name, packages)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")
    return FileWriteResult(
        module=module.name,
        path=file_path.resolve(),
        line_count=content.count("\n"),
        byte_count=len(content.encode("utf-8")),
    )


def write_package(
    output_dir: Path,
    config: WriteConfig,
    modules: tuple[ModuleSource, ...],
) -> PackageWriteResult:
    """Write every module in the given order.

    Args:
        output_dir: Directory that receives the glraw package.
        config: Header settings shared by every file.
        modules: Complete module tree from generate_modules.

    Returns:
        PackageWriteResult with one FileWriteResult per module.

    Raises:
        OSError: Propagated directly. Partial writes are not rolled back.
    """
    exports = collect_exports(modules)
    packages = package_names(m.name for m in modules)
    files = tuple(
        write_module(output_dir, config, module, exports, packages)
        for module in modules
    )
    return PackageWriteResult(output_dir=Path(output_dir), files=files)


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationCounts:
    profiles: int
    extensions: int
    vendor_groups: int
    functions: int
    shared_functions: int
    enumerants: int
    unexported: int


@dataclass(frozen=True)
class GenerationSummary:
    source_label: str
    output_dir: str
    counts: GenerationCounts
    file_count: int
    total_lines: int
    dangling_count: int


def build_generation_counts(result: GenerationResult) -> GenerationCounts:
    functions = shared = enumerants = unexported = 0
    for key, category in result.symbols.items():
        if not category.owners:
            unexported += 1
        elif key.kind is SymbolKind.FUNCTION:
            functions += 1
            shared += category.shared
        else:
            enumerants += 1

    vendor_prefix = EXTENSION_PACKAGE + "."
    return GenerationCounts(
        profiles=sum(1 for a in result.artifacts if a.name.startswith(PROFILE_PACKAGE + ".")),
        extensions=sum(1 for a in result.artifacts if a.extension is not None),
        vendor_groups=sum(
            1
            for m in result.modules
            if m.name.startswith(vendor_prefix) and "." not in m.name[len(vendor_prefix):]
        ),
        functions=functions,
        shared_functions=shared,
        enumerants=enumerants,
        unexported=unexported,
    )


def build_generation_summary(
    config: WriteConfig,
    result: GenerationResult,
    written: PackageWriteResult,
) -> GenerationSummary:
    return GenerationSummary(
        source_label=config.source_label,
        output_dir=str(written.output_dir),
        counts=build_generation_counts(result),
        file_count=len(written.files),
        total_lines=written.total_lines,
        dangling_count=len(result.dangling),
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    counts = summary.counts
    lines = [
        "OpenGL raw bindings generated:",
        "",
        f"  Source:     {summary.source_label}",
        f"  Output:     {summary.output_dir}",
        "",
        "  Modules:",
        f"    {'Profiles:':<15}{counts.profiles:>6}",
        f"    {'Extensions:':<15}{counts.extensions:>6}",
        f"    {'Vendor groups:':<15}{counts.vendor_groups:>6}",
        "",
        "  Symbols:",
    ]
    function_row = f"    {'Functions:':<15}{counts.functions:>6}"
    if counts.shared_functions:
        function_row += f"  ({counts.shared_functions} shared)"
    lines.append(function_row)
    lines.append(f"    {'Enumerants:':<15}{counts.enumerants:>6}")
    lines.append(f"    {'Unexported:':<15}{counts.unexported:>6}")
    if summary.dangling_count:
        lines.append(f"    {'Dangling:':<15}{summary.dangling_count:>6}")
    lines.append("")
    lines.append(
        f"  Total: {summary.total_lines:,} lines across {summary.file_count} files"
    )
    lines.append("")
    lines.append(
        f'  Verify: PYTHONPATH={summary.output_dir} python -c "import {EXTENSION_PACKAGE}"'
    )
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


def run_generate(config: GenerateConfig) -> PackageWriteResult:
    """Execute parse -> generate -> write for a GenerateConfig.

    Raises:
        OSError: gl.xml or an index file not readable, or a write failure.
        ET.ParseError: Malformed gl.xml.
        GenerationError: Registry inconsistent with the profile table or
            internally inconsistent.
    """
    print(f"Parsing: {config.gl_xml}")
    registry = load_registry(config.gl_xml)
    print(
        f"  Registry: {len(registry.commands)} commands, {len(registry.enums)} enums, "
        f"{len(registry.features)} features, {len(registry.extensions)} extensions"
    )

    doc_index = load_doc_index(config.man_pages, config.extension_specs)
    result = generate_modules(registry, doc_index, strict=config.strict)
    for warning in result.dangling:
        print(f"  Warning: {warning}")
    print(
        f"  Artifacts: {len(result.artifacts)} partitioned, "
        f"{len(result.modules)} modules assembled"
    )

    write_config = WriteConfig(source_label=Path(config.gl_xml).name)
    written = write_package(config.output_dir, write_config, result.modules)
    print(
        f"  Written: {len(written.files)} files, "
        f"{written.total_lines} lines to {written.output_dir}"
    )

    print_generation_summary(build_generation_summary(write_config, result, written))
    return written


# ===--- Discovery ---=== #


@dataclass(frozen=True)
class FeatureSummary:
    """One row of the --list-features table.

    Attributes:
        name: Feature name, e.g. "GL_VERSION_3_2".
        api: Registry api attribute, e.g. "gl" or "gles2".
        number: Version number string, e.g. "3.2".
        required_count: Distinct symbols required under any profile.
        removed_count: Distinct symbols removed under any profile.
        artifacts: Modules touched, in first-use order.
    """

    name: str
    api: str
    number: str
    required_count: int
    removed_count: int
    artifacts: tuple[str, ...]


@dataclass(frozen=True)
class ExtensionSummary:
    name: str
    vendor: str
    supported: str
    command_count: int
    enum_count: int
    module: str


@dataclass(frozen=True)
class ExtensionDetail:
    summary: ExtensionSummary
    commands: tuple[str, ...]
    enums: tuple[str, ...]


def gather_feature_summaries(registry: Registry) -> list[FeatureSummary]:
    """Return one FeatureSummary per feature, in registry order.

    Raises:
        GenerationError: UNKNOWN_PROFILE_MAPPING for an unmapped pair.
    """
    summaries = []
    for feature in registry.features:
        artifacts: dict[str, None] = {}
        required: set[SymbolKey] = set()
        removed: set[SymbolKey] = set()
        for req in feature.requires:
            target = profile_target(feature.name, req.profile)
            artifacts.setdefault(target.artifact, None)
            required.update(directive_keys(req))
        for rm in feature.removes:
            target = profile_target(feature.name, rm.profile)
            artifacts.setdefault(target.artifact, None)
            if target.fallback is not None:
                artifacts.setdefault(target.fallback, None)
            removed.update(directive_keys(rm))
        summaries.append(
            FeatureSummary(
                name=feature.name,
                api=feature.api,
                number=feature.number,
                required_count=len(required),
                removed_count=len(removed),
                artifacts=tuple(artifacts),
            )
        )
    return summaries


def _summarize_extension(ext: Extension) -> tuple[ExtensionSummary, tuple[str, ...], tuple[str, ...]]:
    commands: dict[str, None] = {}
    enums: dict[str, None] = {}
    for req in ext.requires:
        for name in req.commands:
            commands.setdefault(name, None)
        for name in req.enums:
            enums.setdefault(sane_enum(name), None)
    vendor, _ = split_extension_name(ext.name)
    summary = ExtensionSummary(
        name=ext.name,
        vendor=vendor,
        supported=ext.supported,
        command_count=len(commands),
        enum_count=len(enums),
        module=extension_module_name(ext.name),
    )
    return summary, tuple(commands), tuple(enums)


def gather_extension_summaries(registry: Registry) -> list[ExtensionSummary]:
    summaries = [_summarize_extension(ext)[0] for ext in registry.extensions]
    summaries.sort(key=lambda s: s.name)
    return summaries


def filter_extensions_by_text(
    summaries: list[ExtensionSummary],
    filter_text: str,
) -> list[ExtensionSummary]:
    """Keep summaries whose name contains filter_text, case-insensitively."""
    if not filter_text:
        return list(summaries)
    needle = filter_text.lower()
    return [s for s in summaries if needle in s.name.lower()]


def gather_extension_detail(
    registry: Registry, extension_name: str
) -> ExtensionDetail | None:
    for ext in registry.extensions:
        if ext.name == extension_name:
            summary, commands, enums = _summarize_extension(ext)
            return ExtensionDetail(summary=summary, commands=commands, enums=enums)
    return None


def format_features_table(summaries: list[FeatureSummary], source_label: str) -> str:
    lines = [f"{len(summaries)} features in {source_label}:", ""]
    name_width = max((len(s.name) for s in summaries), default=0)
    for s in summaries:
        leaves = ", ".join(a.rsplit(".", 1)[-1] for a in s.artifacts)
        row = (
            f"  {s.name.ljust(name_width)}  {s.api:<6} {s.number:<5} "
            f"+{s.required_count:<5} -{s.removed_count:<5} {leaves}"
        )
        lines.append(row.rstrip())
    lines.append("")
    return "\n".join(lines)


def format_extensions_table(summaries: list[ExtensionSummary], source_label: str) -> str:
    lines = [f"{len(summaries)} extensions in {source_label}:", ""]
    if not summaries:
        lines.append("")
        return "\n".join(lines)
    name_width = max(len(s.name) for s in summaries)
    for s in summaries:
        row = (
            f"  {s.name.ljust(name_width)}  {s.command_count:>4} cmds "
            f"{s.enum_count:>5} enums  {s.supported}"
        )
        lines.append(row.rstrip())
    lines.append("")
    return "\n".join(lines)


def format_extension_detail(detail: ExtensionDetail) -> str:
    s = detail.summary
    lines = [
        f"{s.name} ({s.vendor} extension)",
        f"  Module:    {s.module}",
        f"  Check:     {extension_check_name(s.name)}()",
        f"  Supported: {s.supported or '-'}",
        "",
        f"  Commands ({len(detail.commands)}):",
        *(f"    {name}" for name in detail.commands),
        "",
        f"  Enums ({len(detail.enums)}):",
        *(f"    {name}" for name in detail.enums),
        "",
    ]
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    """Execute one discovery command and print its report.

    Raises:
        SystemExit(1): When --info names an extension missing from gl.xml.
    """
    registry = load_registry(config.gl_xml)
    source_label = Path(config.gl_xml).name

    if config.command == "list-features":
        output = format_features_table(gather_feature_summaries(registry), source_label)
        print(output, end="")

    elif config.command == "list-extensions":
        summaries = gather_extension_summaries(registry)
        if config.filter_text is not None:
            summaries = filter_extensions_by_text(summaries, config.filter_text)
        print(format_extensions_table(summaries, source_label), end="")

    elif config.command == "info":
        assert config.info_extension is not None
        detail = gather_extension_detail(registry, config.info_extension)
        if detail is None:
            print(
                f"Error: extension '{config.info_extension}' not found in {source_label}",
                file=sys.stderr,
            )
            raise SystemExit(1)
        print(format_extension_detail(detail), end="")


# ===--- Main ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        else:
            run_generate(config)
    except GenerationError as err:
        print(f"Generation error [{err.code}]: {err.message}")
        raise SystemExit(1) from err
    except (OSError, ET.ParseError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except (RuntimeError, ValueError) as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
