from __future__ import annotations

from rbxlsp.engine.models import WorkspaceRoot, to_uri
from rbxlsp.engine.roots import RootResolver


def _root(uri: str) -> WorkspaceRoot:
    return WorkspaceRoot(uri=uri, name=uri.rsplit("/", 1)[-1])


PROJ = _root("file:///proj")
SUB = _root("file:///proj/sub")
OTHER = _root("file:///other")


def test_nested_root_collapses_to_outermost() -> None:
    resolver = RootResolver([PROJ, SUB])

    assert resolver.resolve("file:///proj/sub/a.lua") == PROJ
    assert resolver.resolve("file:///proj/b.lua") == PROJ


def test_innermost_containing_root() -> None:
    resolver = RootResolver([PROJ, SUB])

    assert resolver.containing_root("file:///proj/sub/a.lua") == SUB
    assert resolver.outermost(SUB) == PROJ


def test_unowned_document_resolves_to_none() -> None:
    resolver = RootResolver([PROJ, OTHER])

    assert resolver.resolve("file:///elsewhere/x.lua") is None
    assert resolver.resolve("file:///other/x.lua") == OTHER


def test_prefix_match_requires_path_boundary() -> None:
    resolver = RootResolver([PROJ])

    assert resolver.resolve("file:///project/x.lua") is None


def test_root_uri_itself_is_owned() -> None:
    resolver = RootResolver([PROJ])

    assert resolver.resolve("file:///proj") == PROJ
    assert resolver.resolve("file:///proj/") == PROJ


def test_sorted_roots_outermost_first_and_cached() -> None:
    resolver = RootResolver([SUB, PROJ])

    first = resolver.sorted_roots()

    assert first == [PROJ, SUB]
    assert resolver.sorted_roots() is first


def test_adding_root_invalidates_cache() -> None:
    resolver = RootResolver([SUB])
    assert resolver.resolve("file:///proj/sub/a.lua") == SUB
    stale = resolver.sorted_roots()

    resolver.add(PROJ)

    assert resolver.sorted_roots() is not stale
    assert resolver.resolve("file:///proj/sub/a.lua") == PROJ


def test_removing_root_invalidates_cache() -> None:
    resolver = RootResolver([PROJ, SUB])
    assert resolver.resolve("file:///proj/sub/a.lua") == PROJ

    resolver.remove(PROJ)

    assert PROJ not in resolver
    assert len(resolver) == 1
    assert resolver.resolve("file:///proj/sub/a.lua") == SUB
    assert resolver.resolve("file:///proj/b.lua") is None


def test_replace_swaps_all_roots() -> None:
    resolver = RootResolver([PROJ])

    resolver.replace([OTHER])

    assert resolver.roots == [OTHER]
    assert resolver.resolve("file:///proj/a.lua") is None


def test_root_key_ignores_trailing_slash() -> None:
    assert WorkspaceRoot("file:///proj/").key == WorkspaceRoot("file:///proj").key


def test_from_path_builds_file_uri(tmp_path) -> None:
    root = WorkspaceRoot.from_path(str(tmp_path))

    assert root.uri == to_uri(str(tmp_path))
    assert root.uri.startswith("file://")
    assert root.name == tmp_path.name


def test_filesystem_paths_resolve_to_outer_root() -> None:
    outer = WorkspaceRoot.from_path("/proj")
    resolver = RootResolver([outer, WorkspaceRoot.from_path("/proj/sub")])

    assert resolver.resolve("/proj/sub/file.lua") == outer
    assert resolver.resolve("/proj/sub/file.lua") == resolver.resolve("/proj/sub/file.lua")
