import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from todohub import config
from todohub.config import ProviderPaths
from todohub.errors import SourceReadError
from todohub.models import UNKNOWN_PROJECT, Session, Todo
from todohub.providers import registry
from todohub.providers.base import SignatureCache, build_projects, list_jsonl_files, source_signature
from todohub.providers.claude import ClaudeAdapter
from todohub.providers.transcripts import CodexAdapter, GeminiAdapter, TranscriptPlanAdapter


class _FakeOracle:
    def __init__(self, tree: dict[str, list[str]]):
        self.tree = tree

    def list_dir(self, path: str) -> list[str]:
        if path not in self.tree:
            raise SourceReadError(path)
        return sorted(self.tree[path])

    def exists(self, path: str) -> bool:
        return path in self.tree


def _write_jsonl(path: Path, lines: list[dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(json.dumps(line) for line in lines), encoding="utf-8")


def _plan_call(steps: list[tuple[str, str]]) -> dict:
    return {
        "type": "function_call",
        "name": "update_plan",
        "arguments": json.dumps({"plan": [{"step": step, "status": status} for step, status in steps]}),
    }


class SharedHelperTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

    def test_list_jsonl_files_respects_depth(self) -> None:
        _write_jsonl(self.root / "a" / "x.jsonl", [{}])
        _write_jsonl(self.root / "a" / "b" / "y.jsonl", [{}])
        (self.root / "a" / "notes.txt").write_text("", encoding="utf-8")

        self.assertEqual(list_jsonl_files(self.root, max_depth=1), [self.root / "a" / "x.jsonl"])
        self.assertEqual(len(list_jsonl_files(self.root)), 2)
        self.assertEqual(list_jsonl_files(self.root / "missing"), [])

    def test_signature_changes_with_file_count(self) -> None:
        _write_jsonl(self.root / "x.jsonl", [{}])
        before = source_signature(list_jsonl_files(self.root))
        _write_jsonl(self.root / "y.jsonl", [{}])
        after = source_signature(list_jsonl_files(self.root))

        self.assertNotEqual(before, after)

    def test_signature_cache(self) -> None:
        cache: SignatureCache[list[int]] = SignatureCache()
        self.assertIsNone(cache.get("c:1|m:1"))
        cache.store("c:1|m:1", [1])
        self.assertEqual(cache.get("c:1|m:1"), [1])
        self.assertIsNone(cache.get("c:2|m:1"))

    def test_build_projects_groups_and_dedupes(self) -> None:
        sessions = [
            Session(provider="codex", sessionId="s1", projectPath="/codex/a", todos=[Todo(content="x")], updatedAt=10),
            Session(provider="codex", sessionId="s1", projectPath="/codex/a", todos=[], updatedAt=30),
            Session(provider="codex", sessionId="s2", projectPath="/codex/b", updatedAt=20),
        ]

        projects = {p.projectPath: p for p in build_projects("codex", sessions)}

        self.assertEqual(len(projects["/codex/a"].sessions), 1)
        self.assertEqual(projects["/codex/a"].stats.todos, 1)
        self.assertEqual(projects["/codex/a"].flattenedDir, "-codex-a")
        self.assertEqual(projects["/codex/b"].startDate, 20)


class ClaudeAdapterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.paths = ProviderPaths(Path(tmpdir.name))
        self.oracle = _FakeOracle({"/": ["work"], "/work": ["app"], "/work/app": []})

    async def test_fetch_projects(self) -> None:
        _write_jsonl(self.paths.projects_dir / "-work-app" / "aaa111.jsonl", [{"todos": [{"content": "a"}]}])
        adapter = ClaudeAdapter(self.paths, oracle=self.oracle)

        result = await adapter.fetch_projects()

        self.assertTrue(result.success)
        self.assertEqual([p.projectPath for p in result.value], ["/work/app"])
        self.assertEqual(result.value[0].provider, "claude")
        self.assertEqual(adapter.last_report.expectedProjects, 1)

    async def test_missing_home_is_a_failed_result(self) -> None:
        result = await ClaudeAdapter(self.paths, oracle=self.oracle).fetch_projects()

        self.assertFalse(result.success)
        self.assertTrue(result.error)

    async def test_diagnostics_and_repair(self) -> None:
        (self.paths.projects_dir / "-work-app").mkdir(parents=True)
        self.paths.todos_dir.mkdir()
        (self.paths.todos_dir / "bbb222-agent.json").write_text("[]", encoding="utf-8")
        adapter = ClaudeAdapter(self.paths, oracle=self.oracle)

        diagnostics = await adapter.collect_diagnostics()
        self.assertTrue(diagnostics.success)
        self.assertEqual(diagnostics.value.unknownCount, 1)
        self.assertIn("bbb222", diagnostics.value.details)

        planned = await adapter.repair_metadata(dry_run=True)
        self.assertEqual((planned.value.planned, planned.value.written), (1, 0))

        written = await adapter.repair_metadata(dry_run=False)
        self.assertEqual(written.value.written, 1)
        self.assertTrue((self.paths.projects_dir / "-work-app" / "metadata.json").is_file())

    def test_watch_roots(self) -> None:
        roots = ClaudeAdapter(self.paths).watch_roots()
        self.assertEqual(roots, [self.paths.projects_dir, self.paths.todos_dir, self.paths.logs_dir])

    def test_watch_changes_without_existing_roots_is_a_noop(self) -> None:
        unsubscribe = ClaudeAdapter(self.paths).watch_changes(lambda: None)
        unsubscribe()


class TranscriptAdapterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.paths = ProviderPaths(Path(tmpdir.name))

    def _codex_sessions(self) -> None:
        day = self.paths.sessions_dir / "2026" / "01" / "01"
        _write_jsonl(
            day / "rollout-2026-01-01T10-00-00-0001.jsonl",
            [
                {"type": "session_meta", "payload": {"id": "s-1", "git": {"repository_url": "https://github.com/acme/widgets"}}},
                _plan_call([("design", "completed"), ("build", "pending")]),
            ],
        )
        _write_jsonl(
            day / "rollout-2026-01-01T11-00-00-0002.jsonl",
            [{"type": "session_meta", "payload": {"id": "s-2"}}, _plan_call([("explore", "in_progress")])],
        )

    def test_adapter_without_slug_rule_cannot_be_built(self) -> None:
        class NoSlugAdapter(TranscriptPlanAdapter):
            id = "noslug"

        with self.assertRaises(TypeError):
            NoSlugAdapter(self.paths)

    async def test_codex_projects(self) -> None:
        self._codex_sessions()

        result = await CodexAdapter(self.paths).fetch_projects()

        self.assertTrue(result.success)
        projects = {p.projectPath: p for p in result.value}
        self.assertEqual(set(projects), {"/codex/widgets", f"/codex/{UNKNOWN_PROJECT}"})
        widgets = projects["/codex/widgets"]
        self.assertEqual(widgets.provider, "codex")
        self.assertEqual(widgets.stats.todos, 2)
        self.assertEqual(widgets.stats.active, 1)
        self.assertFalse(widgets.pathExists)

    async def test_codex_fetch_is_stable_between_calls(self) -> None:
        self._codex_sessions()
        adapter = CodexAdapter(self.paths)

        first = await adapter.fetch_projects()
        second = await adapter.fetch_projects()

        self.assertEqual(first.value, second.value)

    async def test_missing_sessions_dir_yields_no_projects(self) -> None:
        result = await CodexAdapter(self.paths).fetch_projects()
        self.assertTrue(result.success)
        self.assertEqual(result.value, [])

    async def test_codex_diagnostics_and_repair(self) -> None:
        self._codex_sessions()
        adapter = CodexAdapter(self.paths)

        diagnostics = await adapter.collect_diagnostics()
        repair = await adapter.repair_metadata(dry_run=False)

        self.assertEqual(diagnostics.value.unknownCount, 1)
        self.assertEqual(diagnostics.value.details, "Codex sessions scanned: 2\nSessions without repository_url: 1")
        self.assertEqual((repair.value.planned, repair.value.written, repair.value.unknownCount), (0, 0, 1))

    async def test_gemini_accepts_camel_case_plan_calls(self) -> None:
        _write_jsonl(
            self.paths.sessions_dir / "chat-1.jsonl",
            [
                {"session_id": "g-1", "workspace": "/home/me/gizmo"},
                {"type": "function_call", "name": "updatePlan", "arguments": {"plan": [{"step": "ship", "status": "pending"}]}},
            ],
        )

        result = await GeminiAdapter(self.paths).fetch_projects()

        self.assertEqual([p.projectPath for p in result.value], ["/gemini/gizmo"])
        self.assertEqual(result.value[0].sessions[0].sessionId, "g-1")


class RegistryTests(unittest.TestCase):
    def test_build_adapters_in_registry_order(self) -> None:
        adapters = registry.build_adapters(["gemini", "claude", "nope"])
        self.assertEqual([a.id for a in adapters], ["claude", "gemini"])

    def test_provider_presence(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch.object(config, "CLAUDE_HOME", Path(tmp)), patch.object(config, "CODEX_HOME", Path(tmp) / "none"), patch.object(config, "GEMINI_HOME", Path(tmp) / "none"):
                presence = registry.provider_presence()

        self.assertEqual(presence, {"claude": True, "codex": False, "gemini": False})


if __name__ == "__main__":
    unittest.main()
