from datetime import date, datetime, time

import pytest

from services.records import BookedInterval, RuleView
from services.slots import generate_slots, minutes_to_datetime, overlaps, time_to_minutes

DAY = date(2030, 3, 4)


def rule(**overrides) -> RuleView:
    fields = dict(
        id=1,
        specialty_id=1,
        doctor_id=None,
        type="WEEKLY",
        days_mask=0b1111111,
        date_start=date(2030, 1, 1),
        date_end=None,
        time_start=time(9, 0),
        time_end=time(12, 0),
        slot_minutes=30,
        capacity=2,
    )
    fields.update(overrides)
    return RuleView(**fields)


def booked(hh, mm, end_hh, end_mm, doctor_id=None) -> BookedInterval:
    return BookedInterval(
        start_dt=datetime.combine(DAY, time(hh, mm)),
        end_dt=datetime.combine(DAY, time(end_hh, end_mm)),
        doctor_id=doctor_id,
    )


class TestHelpers:
    def test_time_to_minutes_accepts_time_and_string(self):
        assert time_to_minutes(time(9, 30)) == 570
        assert time_to_minutes("09:30") == 570
        assert time_to_minutes("14:05:59") == 845

    def test_minutes_to_datetime_rolls_past_midnight(self):
        assert minutes_to_datetime(DAY, 0) == datetime(2030, 3, 4, 0, 0)
        assert minutes_to_datetime(DAY, 24 * 60 + 15) == datetime(2030, 3, 5, 0, 15)

    @pytest.mark.parametrize("a, b, expected", [
        ((9, 10), (9, 10), True),
        ((9, 10), (10, 11), False),   # touching end
        ((10, 11), (9, 10), False),   # touching start
        ((9, 11), (10, 12), True),
        ((9, 12), (10, 11), True),    # containment
    ])
    def test_overlaps_is_half_open(self, a, b, expected):
        def dt(h):
            return datetime.combine(DAY, time(h, 0))
        assert overlaps(dt(a[0]), dt(a[1]), dt(b[0]), dt(b[1])) is expected


class TestGenerateSlots:
    def test_even_window_without_bookings(self):
        slots = generate_slots(rule(), DAY, [])

        assert len(slots) == 6
        assert slots[0].start == datetime(2030, 3, 4, 9, 0)
        assert slots[-1].end == datetime(2030, 3, 4, 12, 0)
        assert all(s.available == 2 and s.taken == 0 and s.capacity == 2 for s in slots)
        assert {s.schedule_id for s in slots} == {1}

    def test_uneven_window_keeps_the_overrunning_last_slot(self):
        slots = generate_slots(rule(time_end=time(10, 0), slot_minutes=45), DAY, [])

        assert [(s.start.time(), s.end.time()) for s in slots] == [
            (time(9, 0), time(9, 45)),
            (time(9, 45), time(10, 30)),
        ]

    def test_closed_rule_yields_nothing(self):
        assert generate_slots(rule(is_closed=True), DAY, []) == []

    def test_exception_times_replace_the_rule_window(self):
        slots = generate_slots(rule(ex_time_start=time(10, 0), ex_time_end=time(11, 0)), DAY, [])

        assert [s.start.time() for s in slots] == [time(10, 0), time(10, 30)]

    def test_touching_appointment_only_counts_in_its_own_slot(self):
        slots = generate_slots(rule(), DAY, [booked(9, 30, 10, 0)])
        by_start = {s.start.time(): s for s in slots}

        assert by_start[time(9, 0)].taken == 0
        assert by_start[time(9, 30)].taken == 1
        assert by_start[time(9, 30)].available == 1
        assert by_start[time(10, 0)].taken == 0

    def test_long_appointment_consumes_every_overlapped_slot(self):
        slots = generate_slots(rule(), DAY, [booked(9, 15, 10, 15)])

        assert [s.taken for s in slots] == [1, 1, 1, 0, 0, 0]

    def test_available_never_goes_negative(self):
        slots = generate_slots(
            rule(capacity=1),
            DAY,
            [booked(9, 0, 9, 30), booked(9, 0, 9, 30)],
        )

        assert slots[0].taken == 2
        assert slots[0].available == 0

    def test_doctor_rule_ignores_other_doctors(self):
        appointments = [booked(9, 0, 9, 30, doctor_id=7), booked(9, 0, 9, 30, doctor_id=8)]
        slots = generate_slots(rule(doctor_id=7), DAY, appointments)

        assert slots[0].taken == 1
        assert slots[0].doctor_id == 7

    def test_doctorless_rule_counts_every_appointment(self):
        appointments = [booked(9, 0, 9, 30, doctor_id=7), booked(9, 0, 9, 30)]
        slots = generate_slots(rule(), DAY, appointments)

        assert slots[0].taken == 2
        assert slots[0].available == 0

    def test_to_dict_shape(self):
        payload = generate_slots(rule(doctor_id=3), DAY, [])[0].to_dict()

        assert payload == {
            "start": "2030-03-04T09:00:00",
            "end": "2030-03-04T09:30:00",
            "capacity": 2,
            "taken": 0,
            "available": 2,
            "doctorId": 3,
            "scheduleId": 1,
        }
