from datetime import datetime, timedelta, timezone

import pytest

from backend.recurrence import RecurrenceError, RecurrenceRule, expand, occurs_in_range


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def make_event(start, recurrence=None, **extra):
    event = {
        'id': 7,
        'user_id': 1,
        'title': 'Standup',
        'description': 'Daily sync',
        'location': 'Room 1',
        'category': 'Meeting',
        'color': '#ff0000',
        'start_date': start,
        'duration': 30,
        'recurrence': recurrence,
        'is_recurring_instance': False,
        'parent_event_id': None,
    }
    event.update(extra)
    return event


def starts(occurrences):
    return [o['start_date'] for o in occurrences]


def test_weekly_monday_wednesday_in_january():
    event = make_event(utc(2024, 1, 15, 9), {
        'frequency': 'weekly', 'interval': 1, 'days_of_week': [1, 3], 'max_occurrences': 20,
    })
    result = expand(event, utc(2024, 1, 1), utc(2024, 1, 31, 23, 59, 59))
    assert [d.day for d in starts(result)] == [15, 17, 22, 24, 29, 31]
    assert all(d.hour == 9 for d in starts(result))


def test_weekly_accepts_day_names():
    event = make_event(utc(2024, 1, 15, 9), {'frequency': 'weekly', 'days_of_week': ['Monday', 'wednesday']})
    result = expand(event, utc(2024, 1, 15), utc(2024, 1, 21))
    assert [d.day for d in starts(result)] == [15, 17]


def test_weekly_without_days_uses_anchor_weekday():
    event = make_event(utc(2024, 1, 3, 18), {'frequency': 'weekly'})  # Wednesday
    result = expand(event, utc(2024, 1, 1), utc(2024, 1, 31, 23, 59))
    assert [d.day for d in starts(result)] == [3, 10, 17, 24, 31]


def test_weekly_interval_skips_weeks():
    event = make_event(utc(2024, 1, 15, 9), {'frequency': 'weekly', 'interval': 2, 'days_of_week': [1, 5]})
    result = expand(event, utc(2024, 1, 1), utc(2024, 2, 29))
    assert [(d.month, d.day) for d in starts(result)] == [
        (1, 15), (1, 19), (1, 29), (2, 2), (2, 12), (2, 16), (2, 26),
    ]


def test_weekly_days_before_anchor_in_first_week_are_skipped():
    # Anchor on Wednesday; Monday of that week precedes the seed
    event = make_event(utc(2024, 1, 17, 9), {'frequency': 'weekly', 'days_of_week': [1, 3]})
    result = expand(event, utc(2024, 1, 1), utc(2024, 1, 23))
    assert [d.day for d in starts(result)] == [17, 22]


def test_daily_interval_spacing():
    event = make_event(utc(2024, 3, 1, 7, 30), {'frequency': 'daily', 'interval': 3})
    result = expand(event, utc(2024, 3, 5), utc(2024, 3, 31))
    dates = starts(result)
    assert dates[0] == utc(2024, 3, 7, 7, 30)
    assert all(b - a == timedelta(days=3) for a, b in zip(dates, dates[1:]))
    assert dates[-1] <= utc(2024, 3, 31)


def test_monthly_with_end_date():
    event = make_event(utc(2024, 1, 1, 14), {
        'frequency': 'monthly', 'interval': 1, 'end_date': '2024-12-31T23:59:59Z',
    })
    result = expand(event, utc(2024, 1, 1), utc(2024, 3, 31))
    assert starts(result) == [utc(2024, 1, 1, 14), utc(2024, 2, 1, 14), utc(2024, 3, 1, 14)]


def test_monthly_clamps_to_last_day_without_drift():
    event = make_event(utc(2024, 1, 31, 10), {'frequency': 'monthly'})
    result = expand(event, utc(2024, 2, 1), utc(2024, 5, 31, 23))
    assert starts(result) == [
        utc(2024, 2, 29, 10), utc(2024, 3, 31, 10), utc(2024, 4, 30, 10), utc(2024, 5, 31, 10),
    ]


def test_monthly_clamp_in_non_leap_year():
    event = make_event(utc(2023, 1, 31, 10), {'frequency': 'monthly'})
    result = expand(event, utc(2023, 2, 1), utc(2023, 2, 28, 23))
    assert starts(result) == [utc(2023, 2, 28, 10)]


def test_monthly_interval():
    event = make_event(utc(2024, 1, 15), {'frequency': 'monthly', 'interval': 2})
    result = expand(event, utc(2024, 1, 1), utc(2024, 12, 31))
    assert [d.month for d in starts(result)] == [1, 3, 5, 7, 9, 11]


def test_range_before_start_is_empty():
    event = make_event(utc(2024, 6, 1), {'frequency': 'daily'})
    assert expand(event, utc(2024, 1, 1), utc(2024, 5, 31)) == []


def test_reversed_range_is_empty():
    event = make_event(utc(2024, 1, 1), {'frequency': 'daily'})
    assert expand(event, utc(2024, 2, 1), utc(2024, 1, 1)) == []


def test_end_date_bounds_occurrences():
    end = utc(2024, 1, 10, 12)
    event = make_event(utc(2024, 1, 1, 9), {'frequency': 'daily', 'end_date': end})
    result = expand(event, utc(2024, 1, 1), utc(2024, 2, 1))
    assert len(result) == 10
    assert all(d <= end for d in starts(result))


def test_max_occurrences_counts_from_anchor_not_window():
    event = make_event(utc(2024, 1, 1, 9), {'frequency': 'daily', 'max_occurrences': 10})
    # Jan 1..Jan 10 are the only occurrences; window starts at Jan 6
    result = expand(event, utc(2024, 1, 6), utc(2024, 2, 1))
    assert [d.day for d in starts(result)] == [6, 7, 8, 9, 10]
    assert expand(event, utc(2024, 1, 11), utc(2024, 2, 1)) == []


def test_max_occurrences_weekly():
    event = make_event(utc(2024, 12, 2, 9), {'frequency': 'weekly', 'days_of_week': [1], 'max_occurrences': 4})
    result = expand(event, utc(2024, 12, 1), utc(2024, 12, 31, 23, 59, 59))
    assert [d.day for d in starts(result)] == [2, 9, 16, 23]


def test_range_is_inclusive_at_both_ends():
    event = make_event(utc(2024, 1, 1, 9), {'frequency': 'daily'})
    result = expand(event, utc(2024, 1, 2, 9), utc(2024, 1, 4, 9))
    assert starts(result) == [utc(2024, 1, 2, 9), utc(2024, 1, 3, 9), utc(2024, 1, 4, 9)]


def test_output_ceiling_truncates():
    event = make_event(utc(2024, 1, 1), {'frequency': 'daily'})
    result = expand(event, utc(2024, 1, 1), utc(2099, 1, 1), max_results=50)
    assert len(result) == 50
    assert result[-1]['start_date'] == utc(2024, 2, 19)


def test_occurrence_fields_and_ids():
    event = make_event(utc(2024, 1, 1, 9), {'frequency': 'daily'})
    result = expand(event, utc(2024, 1, 1), utc(2024, 1, 3, 23))
    ids = [o['id'] for o in result]
    assert len(set(ids)) == 3
    assert event['id'] not in ids
    for occ in result:
        assert occ['is_recurring_instance'] is True
        assert occ['parent_event_id'] == 7
        assert occ['title'] == 'Standup'
        assert occ['location'] == 'Room 1'
        assert occ['duration'] == 30


def test_expand_is_idempotent_and_does_not_mutate_base():
    event = make_event(utc(2024, 1, 15, 9), {'frequency': 'weekly', 'days_of_week': [1, 3]})
    snapshot = dict(event)
    first = expand(event, utc(2024, 1, 1), utc(2024, 3, 1))
    second = expand(event, utc(2024, 1, 1), utc(2024, 3, 1))
    assert first == second
    assert event == snapshot


def test_naive_and_string_inputs_are_utc():
    event = make_event('2024-01-01T09:00:00Z', {'frequency': 'daily'})
    result = expand(event, datetime(2024, 1, 2), '2024-01-02T23:59:59+00:00')
    assert starts(result) == [utc(2024, 1, 2, 9)]


def test_non_positive_interval_defaults_to_one():
    rule = RecurrenceRule.from_dict({'frequency': 'daily', 'interval': 0})
    assert rule.interval == 1
    rule = RecurrenceRule.from_dict({'frequency': 'daily', 'interval': -4})
    assert rule.interval == 1


def test_unknown_frequency_fails_loudly():
    with pytest.raises(RecurrenceError):
        RecurrenceRule.from_dict({'frequency': 'yearly'})
    event = make_event(utc(2024, 1, 1), {'frequency': 'hourly'})
    with pytest.raises(RecurrenceError):
        expand(event, utc(2024, 1, 1), utc(2024, 2, 1))


def test_missing_recurrence_is_a_contract_violation():
    with pytest.raises(RecurrenceError):
        expand(make_event(utc(2024, 1, 1)), utc(2024, 1, 1), utc(2024, 2, 1))


def test_invalid_weekday_rejected():
    with pytest.raises(RecurrenceError):
        RecurrenceRule.from_dict({'frequency': 'weekly', 'days_of_week': [0]})
    with pytest.raises(RecurrenceError):
        RecurrenceRule.from_dict({'frequency': 'weekly', 'days_of_week': ['funday']})


def test_rule_round_trips_through_camel_case_input():
    rule = RecurrenceRule.from_dict({
        'frequency': 'WEEKLY', 'daysOfWeek': [3, 1, 3], 'maxOccurrences': 10, 'endDate': '2025-06-01T00:00:00Z',
    })
    assert rule.frequency == 'weekly'
    assert rule.days_of_week == (1, 3)
    assert rule.max_occurrences == 10
    assert rule.to_dict()['end_date'] == '2025-06-01T00:00:00+00:00'


def test_days_of_week_ignored_for_daily_rules():
    rule = RecurrenceRule.from_dict({'frequency': 'daily', 'days_of_week': [1]})
    assert rule.days_of_week == ()


def test_occurs_in_range_for_single_events():
    event = make_event(utc(2024, 12, 5, 10))
    assert occurs_in_range(event, utc(2024, 12, 1), utc(2024, 12, 20))
    assert not occurs_in_range(event, utc(2024, 12, 6), utc(2024, 12, 20))


def test_iteration_guard_truncates_without_raising():
    event = make_event(utc(2024, 1, 1, 9), {'frequency': 'weekly', 'days_of_week': [1]})
    result = expand(event, utc(2024, 1, 1), utc(9000, 1, 1), max_iterations=30)
    # 30 daily steps from Monday Jan 1 cover Mondays Jan 1, 8, 15, 22 and 29
    assert [d.day for d in starts(result)] == [1, 8, 15, 22, 29]


def test_iteration_guard_on_daily_rule():
    event = make_event(utc(2024, 1, 1), {'frequency': 'daily'})
    result = expand(event, utc(2024, 1, 1), utc(9999, 12, 31), max_results=10 ** 6, max_iterations=100)
    assert len(result) == 100
    assert result[-1]['start_date'] == utc(2024, 4, 9)


def test_oversized_interval_and_max_occurrences_rejected():
    with pytest.raises(RecurrenceError):
        RecurrenceRule.from_dict({'frequency': 'daily', 'interval': 1_000_000_000})
    with pytest.raises(RecurrenceError):
        RecurrenceRule.from_dict({'frequency': 'daily', 'max_occurrences': 10 ** 12})
    event = make_event(utc(2024, 1, 1), {'frequency': 'daily', 'interval': 1_000_000_000})
    with pytest.raises(RecurrenceError):
        expand(event, utc(2024, 1, 1), utc(2024, 2, 1))


def test_large_daily_interval_stops_at_datetime_limit():
    rule = RecurrenceRule(frequency='daily', interval=999_999_999)
    event = make_event(utc(2024, 1, 1), rule)
    assert starts(expand(event, utc(2024, 1, 1), utc(9999, 12, 31))) == [utc(2024, 1, 1)]


def test_out_of_range_offset_instant_rejected():
    event = make_event('0001-01-01T00:00:00+01:00', {'frequency': 'daily'})
    with pytest.raises(RecurrenceError):
        expand(event, utc(2024, 1, 1), utc(2024, 2, 1))


def test_occurrences_do_not_share_recurrence_mapping():
    event = make_event(utc(2024, 1, 1, 9), {'frequency': 'daily'})
    first, second = expand(event, utc(2024, 1, 1), utc(2024, 1, 2, 23))
    first['recurrence']['interval'] = 5
    assert 'interval' not in second['recurrence']
    assert 'interval' not in event['recurrence']
