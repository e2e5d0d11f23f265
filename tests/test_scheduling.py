"""
Tests for appointment scheduling.
"""

from datetime import datetime, timedelta, timezone

from preva.db import AppointmentRepository
from preva.workflows import scheduling

MONDAY = datetime(2026, 3, 2, tzinfo=timezone.utc)


def at(day: int, hour: int) -> datetime:
    return MONDAY + timedelta(days=day, hours=hour)


class TestCreateAppointment:
    def test_defaults_title_and_joins_name(self, nurse_actor, mary):
        result = scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 10), title="  ")

        assert result.ok, result.error
        appointment = result.value["appointment"]
        assert appointment["title"] == "Visit"
        assert appointment["patient_name"] == "Mary Thompson"
        assert appointment["nurse_id"] == nurse_actor.id

    def test_end_must_follow_start(self, nurse_actor, mary):
        result = scheduling.create_appointment(nurse_actor, mary.id, at(0, 10), at(0, 10))
        assert not result.ok
        assert result.error == "End must be after start."

    def test_overlaps_are_allowed(self, nurse_actor, mary, robert):
        assert scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 11)).ok
        assert scheduling.create_appointment(nurse_actor, robert.id, at(0, 10), at(0, 12)).ok

    def test_patient_cannot_create(self, mary_actor, mary):
        result = scheduling.create_appointment(mary_actor, mary.id, at(0, 9), at(0, 10))
        assert not result.ok
        assert result.code == "unauthorized"

    def test_other_nurses_patient(self, nurse_actor, stranger):
        result = scheduling.create_appointment(nurse_actor, stranger.id, at(0, 9), at(0, 10))
        assert not result.ok
        assert result.code == "unauthorized"


class TestListAppointments:
    def test_overlap_window_includes_straddling_events(self, nurse_actor, mary):
        scheduling.create_appointment(nurse_actor, mary.id, at(-1, 23), at(0, 1), title="straddles start")
        scheduling.create_appointment(nurse_actor, mary.id, at(2, 9), at(2, 10), title="inside")
        scheduling.create_appointment(nurse_actor, mary.id, at(6, 23), at(7, 1), title="straddles end")
        scheduling.create_appointment(nurse_actor, mary.id, at(8, 9), at(8, 10), title="after")
        scheduling.create_appointment(nurse_actor, mary.id, at(-2, 9), at(0, 0), title="ends at start")

        result = scheduling.list_appointments(nurse_actor, at(0, 0), at(7, 0))

        assert result.ok
        titles = [a["title"] for a in result.value["appointments"]]
        assert titles == ["straddles start", "inside", "straddles end"]

    def test_names_come_from_one_batched_lookup(self, db, nurse_actor, mary, robert):
        for day in range(3):
            scheduling.create_appointment(nurse_actor, mary.id, at(day, 9), at(day, 10))
            scheduling.create_appointment(nurse_actor, robert.id, at(day, 11), at(day, 12))
        before = len(db.table("patients").executed)

        result = scheduling.list_appointments(nurse_actor, at(0, 0), at(7, 0))

        assert result.ok
        assert len(db.table("patients").executed) - before == 1
        names = {a["patient_name"] for a in result.value["appointments"]}
        assert names == {"Mary Thompson", "Robert Chen"}

    def test_nurse_sees_only_own_appointments(self, nurse_actor, other_nurse_actor, mary, stranger):
        scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 10))
        scheduling.create_appointment(other_nurse_actor, stranger.id, at(0, 9), at(0, 10))

        result = scheduling.list_appointments(nurse_actor, at(0, 0), at(1, 0))

        assert [a["patient_id"] for a in result.value["appointments"]] == [mary.id]

    def test_patient_sees_only_own(self, nurse_actor, mary_actor, mary, robert):
        scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 10))
        scheduling.create_appointment(nurse_actor, robert.id, at(0, 11), at(0, 12))

        result = scheduling.list_appointments(mary_actor, at(0, 0), at(1, 0))

        assert result.ok
        assert [a["patient_id"] for a in result.value["appointments"]] == [mary.id]

    def test_patient_cannot_ask_for_another_patient(self, mary_actor, robert):
        result = scheduling.list_appointments(mary_actor, at(0, 0), at(1, 0), patient_id=robert.id)
        assert not result.ok
        assert result.code == "unauthorized"

    def test_nurse_filter_on_unowned_patient(self, nurse_actor, stranger):
        result = scheduling.list_appointments(nurse_actor, at(0, 0), at(1, 0), patient_id=stranger.id)
        assert not result.ok
        assert result.code == "unauthorized"

    def test_empty_window(self, db, nurse_actor):
        result = scheduling.list_appointments(nurse_actor, at(0, 0), at(1, 0))
        assert result.ok
        assert result.value["appointments"] == []
        assert db.table("patients").executed == []


class TestChangeAppointment:
    def test_move(self, nurse_actor, mary):
        created = scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 10))
        appointment_id = created.value["appointment"]["id"]

        result = scheduling.update_appointment(nurse_actor, appointment_id, at(1, 14), at(1, 15))

        assert result.ok
        stored = AppointmentRepository().get_by_id(appointment_id)
        assert stored.start == at(1, 14)
        assert stored.end == at(1, 15)

    def test_other_nurse_cannot_move_or_delete(self, nurse_actor, other_nurse_actor, mary):
        created = scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 10))
        appointment_id = created.value["appointment"]["id"]

        moved = scheduling.update_appointment(other_nurse_actor, appointment_id, at(1, 9), at(1, 10))
        deleted = scheduling.delete_appointment(other_nurse_actor, appointment_id)

        assert not moved.ok and moved.code == "unauthorized"
        assert not deleted.ok and deleted.code == "unauthorized"
        assert AppointmentRepository().get_by_id(appointment_id).start == at(0, 9)

    def test_delete(self, nurse_actor, mary):
        created = scheduling.create_appointment(nurse_actor, mary.id, at(0, 9), at(0, 10))
        appointment_id = created.value["appointment"]["id"]

        assert scheduling.delete_appointment(nurse_actor, appointment_id).ok
        assert AppointmentRepository().get_by_id(appointment_id) is None

        again = scheduling.delete_appointment(nurse_actor, appointment_id)
        assert not again.ok
        assert again.code == "not_found"


class TestWidenRange:
    def test_pads_both_sides(self):
        start, end = scheduling.widen_range(at(0, 0), at(7, 0))
        assert start == at(-7, 0)
        assert end == at(14, 0)
