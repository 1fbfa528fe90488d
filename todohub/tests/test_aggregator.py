import unittest

from todohub.aggregator import Aggregator, merge_projects
from todohub.models import Diagnostics, Project, ProjectStats, RepairOutcome, Session, Todo
from todohub.providers.base import ProviderAdapter
from todohub.results import Result


def _session(provider: str, session_id: str, todos: int = 1) -> Session:
    return Session(
        provider=provider,
        sessionId=session_id,
        todos=[Todo(content=f"t{i}") for i in range(todos)],
    )


def _project(provider: str, path: str, sessions: list[Session], **kwargs) -> Project:
    return Project(
        provider=provider,
        projectPath=path,
        sessions=sessions,
        stats=ProjectStats.from_sessions(sessions),
        **kwargs,
    )


class _FakeAdapter(ProviderAdapter):
    def __init__(self, provider_id: str, projects=None, error: str = "", raises: Exception = None, unknown: int = 0):
        self.id = provider_id
        self.projects = projects or []
        self.error = error
        self.raises = raises
        self.unknown = unknown
        self.repair_calls: list[bool] = []

    async def fetch_projects(self) -> Result[list[Project]]:
        if self.raises is not None:
            raise self.raises
        if self.error:
            return Result.err(self.error)
        return Result.ok(self.projects)

    async def collect_diagnostics(self) -> Result[Diagnostics]:
        if self.error:
            return Result.err(self.error)
        return Result.ok(Diagnostics(unknownCount=self.unknown, details=f"{self.id} ok"))

    async def repair_metadata(self, dry_run: bool) -> Result[RepairOutcome]:
        self.repair_calls.append(dry_run)
        if self.error:
            return Result.err(self.error)
        return Result.ok(RepairOutcome(planned=2, written=0 if dry_run else 2, unknownCount=self.unknown))


class MergeProjectsTests(unittest.TestCase):
    def test_merges_same_identity(self) -> None:
        first = _project("claude", "/p", [_session("claude", "a", 2)], startDate=100, mostRecentTodoDate=200)
        second = _project(
            "claude",
            "/p",
            [_session("claude", "a", 5), _session("claude", "b", 1)],
            pathExists=True,
            startDate=50,
            mostRecentTodoDate=150,
        )

        merged = merge_projects([first, second])

        self.assertEqual(len(merged), 1)
        project = merged[0]
        self.assertEqual([s.sessionId for s in project.sessions], ["a", "b"])
        self.assertEqual(len(project.sessions[0].todos), 2)
        self.assertEqual(project.stats.todos, 2 + 6)
        self.assertEqual(project.startDate, 50)
        self.assertEqual(project.mostRecentTodoDate, 200)
        self.assertTrue(project.pathExists)

    def test_different_providers_stay_separate(self) -> None:
        merged = merge_projects([
            _project("claude", "/p", [_session("claude", "a")]),
            _project("codex", "/p", [_session("codex", "a")]),
        ])
        self.assertEqual(len(merged), 2)

    def test_inputs_are_not_mutated(self) -> None:
        first = _project("claude", "/p", [_session("claude", "a")])
        merge_projects([first, _project("claude", "/p", [_session("claude", "b")])])
        self.assertEqual(len(first.sessions), 1)


class AggregatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_all_failed_returns_first_error_verbatim(self) -> None:
        aggregator = Aggregator([
            _FakeAdapter("claude", error="claude home unreadable"),
            _FakeAdapter("codex", error="codex broke"),
        ])

        result = await aggregator.get_projects()

        self.assertFalse(result.success)
        self.assertEqual(result.error, "claude home unreadable")

    async def test_raising_adapter_counts_as_failure(self) -> None:
        aggregator = Aggregator([
            _FakeAdapter("claude", raises=RuntimeError("boom")),
            _FakeAdapter("codex", error="codex broke"),
        ])

        result = await aggregator.get_projects()

        self.assertEqual(result.error, "boom")

    async def test_partial_failure_returns_remaining_projects(self) -> None:
        aggregator = Aggregator([
            _FakeAdapter("claude", error="nope"),
            _FakeAdapter("codex", projects=[_project("codex", "/codex/x", [_session("codex", "s")])]),
        ])

        result = await aggregator.get_projects()

        self.assertTrue(result.success)
        self.assertEqual([p.projectPath for p in result.value], ["/codex/x"])

    async def test_output_has_no_duplicate_sessions(self) -> None:
        shared = [_session("claude", "a"), _session("claude", "a"), _session("claude", "b")]
        aggregator = Aggregator([
            _FakeAdapter("claude", projects=[_project("claude", "/p", shared), _project("claude", "/p", shared[:1])]),
        ])

        result = await aggregator.get_projects()

        for project in result.value:
            identities = [s.identity for s in project.sessions]
            self.assertEqual(len(identities), len(set(identities)))

    async def test_no_adapters(self) -> None:
        result = await Aggregator([]).get_projects()
        self.assertTrue(result.success)
        self.assertEqual(result.value, [])

    async def test_listeners_receive_successful_loads(self) -> None:
        aggregator = Aggregator([_FakeAdapter("claude", projects=[_project("claude", "/p", [])])])
        received: list[int] = []

        async def async_listener(projects):
            received.append(len(projects))

        unsubscribe = aggregator.on_change(lambda projects: received.append(-len(projects)))
        aggregator.on_change(async_listener)

        await aggregator.get_projects()
        unsubscribe()
        await aggregator.get_projects()

        self.assertEqual(received, [-1, 1, 1])

    async def test_failed_load_does_not_notify(self) -> None:
        aggregator = Aggregator([_FakeAdapter("claude", error="x")])
        received = []
        aggregator.on_change(received.append)

        await aggregator.get_projects()

        self.assertEqual(received, [])

    async def test_collect_diagnostics(self) -> None:
        aggregator = Aggregator([
            _FakeAdapter("claude", unknown=3),
            _FakeAdapter("codex", unknown=2),
            _FakeAdapter("gemini", error="unreadable"),
        ])

        report = await aggregator.collect_diagnostics()

        self.assertEqual(report.totalUnknown, 5)
        self.assertEqual([p.ok for p in report.providers], [True, True, False])
        self.assertEqual(report.providers[2].error, "unreadable")

    async def test_repair_all_providers(self) -> None:
        claude, codex = _FakeAdapter("claude", unknown=1), _FakeAdapter("codex")
        result = await Aggregator([claude, codex]).repair_metadata(dry_run=True)

        self.assertTrue(result.success)
        self.assertTrue(result.value.dryRun)
        self.assertEqual(result.value.totalPlanned, 4)
        self.assertEqual(result.value.totalWritten, 0)
        self.assertEqual(result.value.totalUnknown, 1)
        self.assertEqual((claude.repair_calls, codex.repair_calls), ([True], [True]))

    async def test_repair_single_provider(self) -> None:
        claude, codex = _FakeAdapter("claude"), _FakeAdapter("codex")
        result = await Aggregator([claude, codex]).repair_metadata(provider="codex", dry_run=False)

        self.assertEqual([r.provider for r in result.value.results], ["codex"])
        self.assertEqual(result.value.totalWritten, 2)
        self.assertEqual(claude.repair_calls, [])

    async def test_repair_unknown_provider(self) -> None:
        result = await Aggregator([_FakeAdapter("claude")]).repair_metadata(provider="cursor")
        self.assertFalse(result.success)
        self.assertIn("cursor", result.error)


if __name__ == "__main__":
    unittest.main()
