from pathlib import Path

import pytest
from fake_host import FakeElement, FakeModel, FakeReference, write_java_project

from idebridge.core.errors import ErrorCode
from idebridge.core.languages import Language
from idebridge.host.resolver import EntityResolver
from idebridge.host.workspace import HostContext, Workspace


def _context(root: Path, indexing: bool = False) -> HostContext:
    return HostContext.static(
        [Workspace("demo", root.as_posix()), Workspace("other", "/elsewhere/other")],
        is_indexing=lambda _workspace: indexing,
    )


def _greet_elements(source: Path) -> tuple[FakeElement, FakeElement]:
    path = source.as_posix()
    main_class = FakeElement("Main", "class", path, 13)
    greet = FakeElement("greet", "method", path, 39, parent=main_class)
    return main_class, greet


class TestEntityResolver:
    def test_missing_file(self, tmp_path: Path) -> None:
        resolver = EntityResolver(_context(tmp_path), FakeModel())
        entity, error = resolver.resolve(str(tmp_path / "nope.java"), 1, 1)
        assert entity is None
        assert error is not None
        assert error.code is ErrorCode.FILE_NOT_FOUND

    def test_file_outside_every_workspace_lists_candidates(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        context = HostContext.static([Workspace("elsewhere", "/elsewhere/project")])
        _, error = EntityResolver(context, FakeModel()).resolve(str(source), 1, 1)
        assert error is not None
        assert error.code is ErrorCode.WORKSPACE_NOT_OWNED
        assert error.context["candidates"] == ["elsewhere"]
        assert "project" in error.message

    def test_indexing_is_retryable(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        _, error = EntityResolver(_context(tmp_path, indexing=True), FakeModel()).resolve(str(source), 1, 1)
        assert error is not None
        assert error.code is ErrorCode.INDEX_REBUILDING
        assert error.retryable

    def test_indexing_checked_before_bounds(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        _, error = EntityResolver(_context(tmp_path, indexing=True), FakeModel()).resolve(str(source), 999, 1)
        assert error is not None
        assert error.code is ErrorCode.INDEX_REBUILDING

    def test_line_out_of_bounds(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        _, error = EntityResolver(_context(tmp_path), FakeModel()).resolve(str(source), 10, 1)
        assert error is not None
        assert error.code is ErrorCode.OUT_OF_BOUNDS
        assert "1-9" in error.message

    def test_reference_resolves_to_declaration(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        path = source.as_posix()
        _, greet = _greet_elements(source)
        # `greet` on line 7: "        new Main().greet(" -> column 20
        usage_offset = sum(len(line) + 1 for line in source.read_text().splitlines()[:6]) + 19
        model = FakeModel(
            references={(path, usage_offset): FakeReference(greet)},
            elements={(path, usage_offset): FakeElement(None, "identifier", path, usage_offset)},
        )
        entity, error = EntityResolver(_context(tmp_path), model).resolve(str(source), 7, 20)
        assert error is None
        assert entity is not None
        assert entity.element is greet
        assert entity.offset == usage_offset
        assert entity.language is Language.JAVA
        assert entity.workspace.name == "demo"
        assert entity.to_dict()["line"] == 2

    def test_ancestor_walk_finds_named_parent(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        path = source.as_posix()
        _, greet = _greet_elements(source)
        body = FakeElement(None, "code-block", path, 60, parent=greet)
        token = FakeElement(None, "keyword", path, 67, parent=body)
        model = FakeModel(elements={(path, 67): token})
        entity, error = EntityResolver(_context(tmp_path), model).resolve(str(source), 3, 9)
        assert error is None
        assert entity is not None
        assert entity.element is greet

    def test_unresolvable_reference_falls_back_to_ancestors(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        path = source.as_posix()
        main_class, _ = _greet_elements(source)
        model = FakeModel(
            references={(path, 0): FakeReference(None)},
            elements={(path, 0): FakeElement(None, "modifier", path, 0, parent=main_class)},
        )
        entity, _ = EntityResolver(_context(tmp_path), model).resolve(str(source), 1, 1)
        assert entity is not None
        assert entity.element is main_class

    def test_raw_element_when_nothing_is_named(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        path = source.as_posix()
        whitespace = FakeElement(None, "whitespace", path, 0)
        entity, _ = EntityResolver(_context(tmp_path), FakeModel(default_element=whitespace)).resolve(
            str(source), 5, 1
        )
        assert entity is not None
        assert entity.element is whitespace

    def test_no_element_at_offset(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        _, error = EntityResolver(_context(tmp_path), FakeModel()).resolve(str(source), 1, 1)
        assert error is not None
        assert error.code is ErrorCode.ELEMENT_NOT_FOUND

    def test_resolve_range(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        file_range, error = EntityResolver(_context(tmp_path), FakeModel()).resolve_range(
            str(source), (3, 9), (3, 32)
        )
        assert error is None
        assert file_range is not None
        assert file_range.end_offset - file_range.start_offset == 23
        assert file_range.workspace.name == "demo"


class TestOwnershipIsCanonical:
    def _app_context(self, tmp_path: Path) -> HostContext:
        app = tmp_path / "app"
        (app / "sub").mkdir(parents=True)
        return HostContext.static([Workspace("app", app.as_posix())])

    def test_hint_cannot_claim_a_file_outside_its_root(self, tmp_path: Path) -> None:
        context = self._app_context(tmp_path)
        outside = write_java_project(tmp_path / "outside")
        entity, error = EntityResolver(context, FakeModel()).resolve(str(outside), 1, 1, workspace_hint="app")
        assert entity is None
        assert error is not None
        assert error.code is ErrorCode.WORKSPACE_NOT_OWNED
        assert error.context["candidates"] == ["app"]

    def test_dot_dot_segments_cannot_escape_the_root(self, tmp_path: Path) -> None:
        context = self._app_context(tmp_path)
        write_java_project(tmp_path / "outside")
        escaping = (tmp_path / "app").as_posix() + "/sub/../../outside/src/Main.java"
        entity, error = EntityResolver(context, FakeModel()).resolve(escaping, 1, 1)
        assert entity is None
        assert error is not None
        assert error.code is ErrorCode.WORKSPACE_NOT_OWNED

    def test_symlink_to_a_file_outside_is_not_owned(self, tmp_path: Path) -> None:
        context = self._app_context(tmp_path)
        outside = write_java_project(tmp_path / "outside")
        link = tmp_path / "app" / "Linked.java"
        link.symlink_to(outside)
        _, error = EntityResolver(context, FakeModel()).resolve(str(link), 1, 1)
        assert error is not None
        assert error.code is ErrorCode.WORKSPACE_NOT_OWNED

    def test_relative_path_resolves_against_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        source = write_java_project(tmp_path / "app")
        context = HostContext.static([Workspace("app", (tmp_path / "app").as_posix())])
        model = FakeModel(elements={(source.as_posix(), 0): FakeElement("Main", "class", source.as_posix(), 13)})
        monkeypatch.chdir(tmp_path / "app")
        entity, error = EntityResolver(context, model).resolve("src/Main.java", 1, 1)
        assert error is None
        assert entity is not None
        assert entity.file_path == source.as_posix()
        assert entity.workspace.name == "app"

    def test_dot_dot_inside_the_root_still_resolves(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path / "app")
        context = self._app_context(tmp_path)
        model = FakeModel(default_element=FakeElement("Main", "class", source.as_posix(), 13))
        roundabout = (tmp_path / "app").as_posix() + "/sub/../src/Main.java"
        entity, error = EntityResolver(context, model).resolve(roundabout, 1, 1)
        assert error is None
        assert entity is not None
        assert entity.file_path == source.as_posix()


class TestWorkspaceSelection:
    def _nested(self) -> HostContext:
        return HostContext.static(
            [
                Workspace("outer", "/work/outer"),
                Workspace("inner", "/work/outer/inner"),
                Workspace("other", "/srv/other"),
            ]
        )

    def test_hint_by_name_selects_among_containing_workspaces(self) -> None:
        workspace, error = self._nested().resolve_workspace("/work/outer/inner/A.java", hint="OUTER")
        assert error is None
        assert workspace is not None
        assert workspace.name == "outer"

    def test_hint_by_path_suffix(self) -> None:
        workspace, _ = self._nested().resolve_workspace("/work/outer/inner/A.java", hint="work/outer")
        assert workspace is not None
        assert workspace.name == "outer"

    def test_hint_for_a_workspace_not_containing_the_file_falls_back_to_path(self) -> None:
        workspace, error = self._nested().resolve_workspace("/work/outer/inner/A.java", hint="other")
        assert error is None
        assert workspace is not None
        assert workspace.name == "inner"

    def test_hint_never_grants_ownership(self) -> None:
        workspace, error = self._nested().resolve_workspace("/anywhere/file.java", hint="other")
        assert workspace is None
        assert error is not None
        assert error.code is ErrorCode.WORKSPACE_NOT_OWNED

    def test_unknown_hint_falls_back_to_path(self, tmp_path: Path) -> None:
        workspace, error = _context(tmp_path).resolve_workspace(
            (tmp_path.resolve() / "src" / "A.java").as_posix(), hint="missing"
        )
        assert error is None
        assert workspace is not None
        assert workspace.name == "demo"

    def test_nested_workspace_wins(self) -> None:
        context = HostContext.static([Workspace("outer", "/a"), Workspace("inner", "/a/b")])
        workspace, _ = context.resolve_workspace("/a/b/x.txt")
        assert workspace is not None
        assert workspace.name == "inner"
