import pytest

from buildwright.exceptions import ResourceError
from buildwright.tools.workspace import FileMaterializer
from buildwright.utils import GeneratedFile


def test_apply_writes_then_skips_unchanged(tmp_path):
    fm = FileMaterializer(tmp_path)
    files = [GeneratedFile("src/App.tsx", "app\n"), GeneratedFile("src/types/index.ts", "types\n")]

    first = fm.apply(files)
    assert first.written == ["src/App.tsx", "src/types/index.ts"]
    assert (tmp_path / "src" / "App.tsx").read_text() == "app\n"

    second = fm.apply([GeneratedFile("src/App.tsx", "app\n"), GeneratedFile("src/types/index.ts", "types v2\n")])
    assert second.unchanged == ["src/App.tsx"]
    assert second.written == ["src/types/index.ts"]
    assert second.touched == ["src/types/index.ts", "src/App.tsx"]


def test_paths_outside_the_root_are_refused(tmp_path):
    fm = FileMaterializer(tmp_path / "app")
    with pytest.raises(ResourceError):
        fm.write("../outside.ts", "x")
    assert not (tmp_path / "outside.ts").exists()


def test_failed_write_is_a_resource_error_and_keeps_old_content(tmp_path):
    fm = FileMaterializer(tmp_path)
    fm.write("src/ok.ts", "old\n")
    (tmp_path / "src" / "Dir.tsx").mkdir()

    with pytest.raises(ResourceError) as exc:
        fm.apply([GeneratedFile("src/ok.ts", "new\n"), GeneratedFile("src/Dir.tsx", "x")])
    assert exc.value.path == "src/Dir.tsx"
    # Earlier files in the batch were still written atomically
    assert fm.read("src/ok.ts") == "new\n"
    assert sorted(p.name for p in (tmp_path / "src").iterdir()) == ["Dir.tsx", "ok.ts"]


def test_read_and_list_skip_vendor_dirs(tmp_path):
    fm = FileMaterializer(tmp_path)
    fm.write("src/a.ts", "a")
    fm.write("node_modules/react/index.js", "vendor")
    fm.write(".buildwright/project.json", "{}")

    assert fm.read("src/missing.ts") is None
    assert fm.list_files() == ["src/a.ts"]


def test_select_context_prefers_recent_files_within_budget(tmp_path):
    fm = FileMaterializer(tmp_path)
    fm.write("src/types.ts", "t" * 10)
    fm.write("src/Big.tsx", "b" * 100)
    fm.write("src/App.tsx", "a" * 20)

    paths = ["src/types.ts", "src/Big.tsx", "src/App.tsx", "src/gone.ts"]
    assert list(fm.select_context(paths, max_files=10, max_chars=50)) == ["src/types.ts", "src/App.tsx"]
    assert list(fm.select_context(paths, max_files=1, max_chars=1000)) == ["src/App.tsx"]
