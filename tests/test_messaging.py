"""
Tests for chat and patient self-reports.
"""

from datetime import datetime

from preva.workflows import messaging
from preva.workflows.messaging import ANALYSIS_UNAVAILABLE
from tests.fakes import text_response, tool_response


class TestChat:
    def test_round_trip_between_nurse_and_patient(self, nurse_actor, mary_actor, mary):
        assert messaging.send_chat_message(nurse_actor, mary.id, "How are you feeling?").ok
        assert messaging.send_chat_message(mary_actor, None, "A bit short of breath.").ok

        result = messaging.fetch_chat_messages(mary_actor, None)

        assert result.ok
        messages = result.value["messages"]
        assert [m["text"] for m in messages] == ["How are you feeling?", "A bit short of breath."]
        assert [m["sender_role"] for m in messages] == ["nurse", "patient"]

    def test_after_returns_only_newer(self, db, nurse_actor, mary):
        messaging.send_chat_message(nurse_actor, mary.id, "one")
        db.rows("chat_messages")[0]["created_at"] = "2026-01-01T08:00:00.000000+00:00"
        messaging.send_chat_message(nurse_actor, mary.id, "two")

        result = messaging.fetch_chat_messages(
            nurse_actor, mary.id, after=datetime.fromisoformat("2026-01-01T08:00:00+00:00")
        )

        assert [m["text"] for m in result.value["messages"]] == ["two"]

    def test_empty_message_rejected(self, nurse_actor, mary):
        result = messaging.send_chat_message(nurse_actor, mary.id, "  ")
        assert not result.ok
        assert result.error == "Empty message."

    def test_other_nurse_cannot_read_thread(self, other_nurse_actor, mary):
        result = messaging.fetch_chat_messages(other_nurse_actor, mary.id)
        assert not result.ok
        assert result.code == "unauthorized"

    def test_patient_cannot_post_to_another_thread(self, robert_actor, mary):
        result = messaging.send_chat_message(robert_actor, mary.id, "hello")
        assert not result.ok
        assert result.code == "unauthorized"


class TestUnreadCounts:
    def test_counts_patient_messages_and_omits_zero(self, nurse_actor, mary_actor, mary, robert):
        for text in ("one", "two", "three"):
            messaging.send_chat_message(mary_actor, None, text)
        messaging.send_chat_message(nurse_actor, robert.id, "nurse lines are not counted")

        result = messaging.unread_counts(nurse_actor, [mary.id, robert.id])

        assert result.ok
        assert result.value["counts"] == {mary.id: 3}

    def test_mark_read_clears_count(self, nurse_actor, mary_actor, mary):
        messaging.send_chat_message(mary_actor, None, "hello")
        messaging.send_chat_message(nurse_actor, mary.id, "hi")

        marked = messaging.mark_chat_read(nurse_actor, mary.id)

        assert marked.value["updated"] == 1
        assert messaging.unread_counts(nurse_actor, [mary.id]).value["counts"] == {}
        # The nurse's own line stays unread for the patient
        assert messaging.mark_chat_read(mary_actor, None).value["updated"] == 1

    def test_counts_are_grouped_in_the_database(self, db, nurse_actor, mary_actor, mary):
        messaging.send_chat_message(mary_actor, None, "one")
        messaging.send_chat_message(mary_actor, None, "two")
        db.table("chat_messages").executed.clear()

        result = messaging.unread_counts(nurse_actor, [mary.id])

        assert result.value["counts"] == {mary.id: 2}
        assert db.rpc_calls == [("unread_chat_counts", {"patient_ids": [mary.id], "sender": "patient"})]
        assert db.table("chat_messages").executed == []

    def test_ignores_patients_of_other_nurses(self, nurse_actor, stranger):
        from preva.db import ChatMessageRepository
        from preva.models import UserRole

        ChatMessageRepository().create(stranger.id, "someone", UserRole.PATIENT, "hi")

        result = messaging.unread_counts(nurse_actor, [stranger.id])

        assert result.value["counts"] == {}

    def test_patients_cannot_ask(self, mary_actor, mary):
        result = messaging.unread_counts(mary_actor, [mary.id])
        assert not result.ok


class TestPatientMessages:
    def test_raw_message(self, llm, mary_actor, mary):
        result = messaging.submit_patient_message(mary_actor, "My ankles are swollen.", "raw")

        assert result.ok
        message = result.value["message"]
        assert message["type"] == "raw"
        assert message["symptoms"] is None
        assert message["ai_summary"] is None
        assert llm.calls == []

    def test_analyzed_message(self, llm, mary_actor, mary):
        llm.push(tool_response({"symptoms": ["ankle swelling", " dizziness "], "summary": "Swelling and dizziness."}))

        result = messaging.submit_patient_message(mary_actor, "Ankles swollen and I feel dizzy.", "analyzed")

        assert result.ok
        message = result.value["message"]
        assert message["symptoms"] == ["ankle swelling", "dizziness"]
        assert message["ai_summary"] == "Swelling and dizziness."

    def test_analysis_failure_still_stores(self, db, llm, mary_actor, mary):
        llm.push(text_response("no tool"), text_response("not json at all"))

        result = messaging.submit_patient_message(mary_actor, "I feel tired.", "analyzed")

        assert result.ok
        message = result.value["message"]
        assert message["type"] == "analyzed"
        assert message["symptoms"] == []
        assert message["ai_summary"] == ANALYSIS_UNAVAILABLE
        assert len(db.rows("patient_messages")) == 1

    def test_missing_model_key_still_stores(self, monkeypatch, mary_actor, mary):
        from preva.llm import set_client

        set_client(None)
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        result = messaging.submit_patient_message(mary_actor, "I feel tired.", "analyzed")

        assert result.ok
        assert result.value["message"]["ai_summary"] == ANALYSIS_UNAVAILABLE

    def test_only_patients_submit(self, nurse_actor):
        result = messaging.submit_patient_message(nurse_actor, "hello", "raw")
        assert not result.ok
        assert result.error == "Only patients can submit messages."

    def test_bad_mode(self, mary_actor, mary):
        result = messaging.submit_patient_message(mary_actor, "hello", "shouted")
        assert not result.ok
        assert result.code == "validation"

    def test_listing_is_newest_first(self, db, nurse_actor, mary_actor, mary):
        for day, text in ((1, "first"), (2, "second")):
            messaging.submit_patient_message(mary_actor, text, "raw")
            db.rows("patient_messages")[-1]["created_at"] = f"2026-01-0{day}T08:00:00.000000+00:00"

        result = messaging.fetch_patient_messages(nurse_actor, mary.id)

        assert [m["transcript"] for m in result.value["messages"]] == ["second", "first"]

    def test_other_nurse_cannot_list(self, other_nurse_actor, mary_actor, mary):
        messaging.submit_patient_message(mary_actor, "hello", "raw")
        result = messaging.fetch_patient_messages(other_nurse_actor, mary.id)
        assert not result.ok


class TestNurseReply:
    def _message_id(self, mary_actor) -> str:
        return messaging.submit_patient_message(mary_actor, "Short of breath.", "raw").value["message"]["id"]

    def test_reply_once(self, nurse_actor, mary_actor, mary):
        message_id = self._message_id(mary_actor)

        first = messaging.reply_to_patient_message(nurse_actor, message_id, "I'll visit tomorrow.")
        second = messaging.reply_to_patient_message(nurse_actor, message_id, "Changed my mind.")

        assert first.ok
        assert first.value["message"]["nurse_reply"] == "I'll visit tomorrow."
        assert first.value["message"]["nurse_reply_at"] is not None
        assert not second.ok
        assert second.error == "This message already has a reply."

        stored = messaging.fetch_patient_messages(mary_actor, mary.id).value["messages"][0]
        assert stored["nurse_reply"] == "I'll visit tomorrow."

    def test_patient_cannot_reply(self, mary_actor, mary):
        message_id = self._message_id(mary_actor)
        result = messaging.reply_to_patient_message(mary_actor, message_id, "hi")
        assert not result.ok
        assert result.error == "Only nurses can reply."

    def test_other_nurse_cannot_reply(self, other_nurse_actor, mary_actor, mary):
        message_id = self._message_id(mary_actor)
        result = messaging.reply_to_patient_message(other_nurse_actor, message_id, "hi")
        assert not result.ok
        assert result.code == "unauthorized"

    def test_mark_read(self, nurse_actor, mary_actor, mary):
        self._message_id(mary_actor)
        self._message_id(mary_actor)

        result = messaging.mark_patient_messages_read(nurse_actor, mary.id)

        assert result.value["updated"] == 2
        assert all(m["read"] for m in messaging.fetch_patient_messages(nurse_actor, mary.id).value["messages"])
