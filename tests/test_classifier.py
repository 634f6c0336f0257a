from buildwright.tools import classifier
from buildwright.tools.classifier import ErrorCategory, ErrorRecord


def test_typescript_error_with_location():
    out = "src/App.tsx(12,5): error TS2304: Cannot find name 'TrailCard'."
    records = classifier.classify(out)
    kinds = {r.kind for r in records}
    assert kinds == {"type_error", "cannot_find_name"}
    ts = next(r for r in records if r.kind == "type_error")
    assert ts.category is ErrorCategory.TYPE_CHECK
    assert ts.location == "src/App.tsx:12:5"
    assert ts.message.startswith("TS2304:")
    assert all(r.auto_fixable for r in records)


def test_npm_missing_package_has_quick_fix():
    out = (
        "npm ERR! 404 Not Found - GET https://registry.npmjs.org/reactt-dom - Not found\n"
        "npm ERR! 404  'reactt-dom@latest' is not in this registry.\n"
    )
    [record] = classifier.classify(out)
    assert record.category is ErrorCategory.DEPENDENCY
    assert record.kind == "module_not_found"
    assert classifier.quick_fix(record) == "npm install reactt-dom@latest"


def test_vite_failed_resolve():
    out = (
        '[vite] Internal server error: Failed to resolve import "./Missing" '
        'from "src/App.tsx". Does the file exist?'
    )
    [record] = classifier.classify(out)
    assert record.category is ErrorCategory.BUNDLER
    assert record.file == "src/App.tsx"


def test_runtime_errors_from_browser_console():
    out = "Uncaught TypeError: Cannot read properties of undefined (reading 'map')"
    records = classifier.classify(out)
    assert {r.category for r in records} == {ErrorCategory.RUNTIME}
    read = next(r for r in records if r.kind == "cannot_read_property")
    assert read.message == "Cannot read property 'map' of undefined"


def test_ansi_codes_are_ignored():
    out = "\x1b[31merror TS2322: Type 'string' is not assignable to type 'number'.\x1b[0m"
    [record] = classifier.classify(out)
    assert record.message == "TS2322: Type 'string' is not assignable to type 'number'."


def test_clean_output_has_no_records():
    assert classifier.classify("") == []
    assert classifier.classify("  VITE v5.2.0  ready in 312 ms\n  ➜  Local: http://localhost:5173/") == []


def test_unrecognized_error_becomes_single_unknown_record():
    [record] = classifier.classify("worker crashed\nfatal error in chunk loader\n")
    assert record.category is ErrorCategory.UNKNOWN
    assert record.kind == "unrecognized"
    assert record.message == "fatal error in chunk loader"
    assert not record.auto_fixable


def test_relative_import_has_no_quick_fix():
    record = ErrorRecord(
        category=ErrorCategory.TYPE_CHECK, kind="cannot_find_module",
        message="Cannot find module './utils'",
    )
    assert classifier.quick_fix(record) is None


def test_summarize_and_fix_prompt():
    records = classifier.classify(
        "error TS2304: Cannot find name 'x'.\n"
        "Property 'title' does not exist on type 'Trail'"
    )
    assert classifier.summarize(records) == "3 type-check errors"
    assert classifier.summarize([]) == "No errors detected"
    prompt = classifier.fix_prompt(records)
    assert "TYPE-CHECK [property_not_exist]" in prompt
    assert "Suggestion:" in prompt


def test_preview_unreachable_prefers_server_output():
    plain = classifier.preview_unreachable("")
    assert [(r.category, r.kind) for r in plain] == [(ErrorCategory.BUNDLER, "preview_unreachable")]

    crash = classifier.preview_unreachable(
        "SyntaxError: Unexpected token (3:4)\n    at src/App.tsx:3:4\n"
    )
    assert crash[0].kind == "syntax_error"
    assert crash[0].location == "src/App.tsx:3:4"


def test_generation_failed_classifies_reason_when_possible():
    [plain] = classifier.generation_failed("spec is ambiguous", "raw reply")
    assert plain.kind == "generation_failed"
    assert "spec is ambiguous" in plain.message

    typed = classifier.generation_failed("error TS2304: Cannot find name 'x'", "raw")
    assert typed[0].category is ErrorCategory.TYPE_CHECK


def test_fixed_records():
    assert classifier.aborted().auto_fixable is False
    assert classifier.resource_failure("src/a.ts", "disk full").file == "src/a.ts"
    assert classifier.protocol_violation("x").kind == "protocol_violation"
    assert classifier.transport_failure(ConnectionError("refused")).category is ErrorCategory.UNKNOWN


def test_record_dict_round_trip():
    [record] = classifier.classify("src/App.tsx(1,2): error TS1005: ';' expected.")
    again = ErrorRecord.from_dict(record.to_dict())
    assert again == record
    assert record.to_dict()["category"] == "type-check"


def test_missing_dev_server_binary_is_a_dependency_error():
    for out in ("sh: 1: vite: not found", "sh: vite: command not found", "bash: line 1: vite: command not found"):
        [record] = classifier.classify(f"> trailhead@0.0.0 dev\n> vite --port 5173\n\n{out}\n")
        assert record.category is ErrorCategory.DEPENDENCY
        assert record.kind == "command_not_found"
        assert record.message == "Command 'vite' not found"
        assert classifier.quick_fix(record) == "npm install"

    [unreachable] = classifier.preview_unreachable("sh: 1: vite: not found\n")
    assert unreachable.category is ErrorCategory.DEPENDENCY


def test_install_failure_is_always_a_dependency_error():
    [plain] = classifier.install_failure("npm ERR! code E401\nnpm ERR! Unable to authenticate\n")
    assert plain.category is ErrorCategory.DEPENDENCY
    assert plain.kind == "install_failed"
    assert plain.auto_fixable
    assert "npm ERR! code E401" in plain.message

    conflict = classifier.install_failure(
        "npm ERR! ERESOLVE unable to resolve dependency tree\n"
        "npm ERR! Could not resolve dependency:\nnpm ERR! peer react@\"^17\" from old-lib@1.0.0\n"
    )
    assert [r.kind for r in conflict] == ["version_conflict"]
    assert classifier.quick_fix(conflict[0]) == "npm install --legacy-peer-deps"
