"""Tests for ConversationHistory: system head, pruning, document anchor."""

from __future__ import annotations

from companion.agent.history import ConversationHistory, ConversationTurn, Role


def _turn(role: Role, content: str, **kw) -> ConversationTurn:
    return ConversationTurn(role=role, content=content, **kw)


def _exchange(i: int) -> list[ConversationTurn]:
    return [_turn(Role.user, f"q{i}"), _turn(Role.assistant, f"a{i}")]


class TestEnsureSystem:
    def test_inserts_once(self):
        h = ConversationHistory()
        h.ensure_system("sys")
        h.ensure_system("other")
        assert len(h) == 1
        assert h[0] == _turn(Role.system, "sys")

    def test_prepends_when_head_is_not_system(self):
        h = ConversationHistory()
        h.extend(_exchange(0), max_turns=10)
        h.ensure_system("sys")
        assert [t.role for t in h] == [Role.system, Role.user, Role.assistant]


class TestPrune:
    def test_keeps_system_and_most_recent(self):
        h = ConversationHistory()
        h.ensure_system("sys")
        for i in range(4):
            h.extend(_exchange(i), max_turns=5)

        assert len(h) == 5
        assert [t.content for t in h] == ["sys", "q2", "a2", "q3", "a3"]

    def test_max_one_keeps_only_system(self):
        h = ConversationHistory()
        h.ensure_system("sys")
        h.extend(_exchange(0), max_turns=1)
        assert [t.content for t in h] == ["sys"]

    def test_invalid_max_is_treated_as_one(self):
        h = ConversationHistory()
        h.ensure_system("sys")
        h.extend(_exchange(0), max_turns=0)
        assert len(h) == 1

    def test_without_system_keeps_tail(self):
        h = ConversationHistory()
        for i in range(3):
            h.extend(_exchange(i), max_turns=4)
        assert [t.content for t in h] == ["q1", "a1", "q2", "a2"]

    def test_orphan_tool_turns_dropped(self):
        h = ConversationHistory()
        h.ensure_system("sys")
        h.extend(
            [
                _turn(Role.user, "q"),
                _turn(Role.assistant, "", tool_calls=({"id": "c1"},)),
                _turn(Role.tool, "done", tool_call_id="c1"),
                _turn(Role.assistant, "answer"),
            ],
            max_turns=3,
        )
        assert [t.role for t in h] == [Role.system, Role.assistant]
        assert h[-1].content == "answer"


class TestDocumentAnchor:
    def test_change_resets(self):
        h = ConversationHistory()
        assert h.sync_document("/a.py") is True
        h.ensure_system("sys")
        assert h.sync_document("/a.py") is False
        assert len(h) == 1

        assert h.sync_document("/b.py") is True
        assert len(h) == 0
        assert h.document_anchor == "/b.py"

    def test_no_document_keeps_history(self):
        h = ConversationHistory()
        h.sync_document("/a.py")
        h.ensure_system("sys")
        assert h.sync_document(None) is False
        assert len(h) == 1
        assert h.document_anchor == "/a.py"

    def test_reset_clears_anchor(self):
        h = ConversationHistory()
        h.sync_document("/a.py")
        h.reset()
        assert h.document_anchor is None
        assert h.sync_document("/a.py") is True


class TestSerialization:
    def test_to_openai_includes_tool_fields(self):
        calls = ({"id": "c1", "type": "function", "function": {"name": "f", "arguments": "{}"}},)
        assistant = _turn(Role.assistant, "", tool_calls=calls)
        tool = _turn(Role.tool, "ok", tool_call_id="c1")
        assert assistant.to_openai() == {"role": "assistant", "content": "", "tool_calls": list(calls)}
        assert tool.to_openai() == {"role": "tool", "content": "ok", "tool_call_id": "c1"}

    def test_export(self):
        h = ConversationHistory()
        h.ensure_system("sys")
        h.extend([_turn(Role.tool, "r", tool_call_id="c9")], max_turns=5)
        assert h.export() == [
            {"role": "system", "content": "sys"},
            {"role": "tool", "content": "r", "tool_call_id": "c9"},
        ]
