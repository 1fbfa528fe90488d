import json
import tempfile
import unittest
from pathlib import Path

from todohub.models import TodoStatus
from todohub.parsers.plans import codex_slug, gemini_slug, parse_plan_session

CODEX_PLAN = frozenset({"update_plan"})


class PlanParserTests(unittest.TestCase):
    def _write_jsonl(self, name: str, lines: list[dict]) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        path.write_text("\n".join(json.dumps(line) for line in lines), encoding="utf-8")
        return path

    def test_codex_rollout_with_repository(self) -> None:
        path = self._write_jsonl(
            "rollout-2026-01-01T10-00-00-1234abcd.jsonl",
            [
                {
                    "type": "session_meta",
                    "payload": {"id": "sess-1", "git": {"repository_url": "https://github.com/acme/widgets.git"}},
                },
                {
                    "timestamp": "2026-01-01T10:00:00Z",
                    "type": "response_item",
                    "payload": {
                        "type": "function_call",
                        "name": "update_plan",
                        "arguments": json.dumps({"plan": [{"step": "old", "status": "pending"}]}),
                    },
                },
                {
                    "timestamp": "2026-01-01T10:05:00Z",
                    "type": "function_call",
                    "name": "update_plan",
                    "arguments": {
                        "plan": [
                            {"step": "design", "status": "completed"},
                            {"step": "build", "status": "in_progress"},
                        ]
                    },
                },
            ],
        )

        plan = parse_plan_session(path, CODEX_PLAN, codex_slug)

        self.assertEqual(plan.session_id, "sess-1")
        self.assertEqual(plan.slug, "widgets")
        self.assertEqual([t.content for t in plan.todos], ["design", "build"])
        self.assertEqual(plan.todos[1].status, TodoStatus.IN_PROGRESS)
        self.assertIsNotNone(plan.updated_at)

    def test_session_id_falls_back_to_filename_token(self) -> None:
        path = self._write_jsonl("rollout-2026-01-01-deadbeef.jsonl", [{"type": "message"}])
        plan = parse_plan_session(path, CODEX_PLAN, codex_slug)

        self.assertEqual(plan.session_id, "deadbeef")
        self.assertIsNone(plan.slug)
        self.assertEqual(plan.todos, [])

    def test_other_function_calls_are_ignored(self) -> None:
        path = self._write_jsonl(
            "rollout-x-1.jsonl",
            [{"type": "function_call", "name": "shell", "arguments": {"plan": [{"step": "nope"}]}}],
        )
        self.assertEqual(parse_plan_session(path, CODEX_PLAN, codex_slug).todos, [])

    def test_gemini_slug_markers(self) -> None:
        self.assertEqual(gemini_slug({"workspace": "/home/me/Gizmo"}), "gizmo")
        self.assertEqual(gemini_slug({"meta": {"repository_url": "git@host:acme/tool.git"}}), "tool")
        self.assertIsNone(gemini_slug({"type": "message"}))


if __name__ == "__main__":
    unittest.main()
