import pytest
from gymlog.aggregation import group_by_date, total_volume, volume_series
from gymlog.models import WorkoutEntry

_counter = iter(range(1, 10_000))


def entry(date, weight=50, reps=10, set_number=1, exercise='Bench', user_id='u1'):
    return WorkoutEntry(id=str(next(_counter)), user_id=user_id, date=date,
                        exercise=exercise, weight=weight, reps=reps, set_number=set_number)


def test_empty_input_yields_empty_output():
    assert group_by_date([]) == []


def test_total_volume_sums_weight_times_reps():
    entries = [entry('2024-01-10', 50, 10), entry('2024-01-10', 60, 5)]
    summaries = group_by_date(entries)
    assert len(summaries) == 1
    assert summaries[0].total_volume == 800


def test_dates_sorted_descending():
    entries = [entry('2024-01-10'), entry('2024-01-12'), entry('2024-01-11')]
    assert [s.date for s in group_by_date(entries)] == ['2024-01-12', '2024-01-11', '2024-01-10']


def test_single_entry():
    e = WorkoutEntry(id='x', user_id='u1', date='2024-02-01', exercise='Squat',
                     weight=100, reps=5, set_number=1)
    (summary,) = group_by_date([e])
    assert summary.date == '2024-02-01'
    assert summary.total_volume == 500
    assert summary.sets == [e]


def test_partition_and_member_order_preserved():
    entries = [
        entry('2024-01-11', set_number=3),
        entry('2024-01-10', set_number=1),
        entry('2024-01-11', set_number=1),
        entry('2024-01-11', set_number=2),
    ]
    summaries = group_by_date(entries)
    flat = [e for s in summaries for e in s.sets]
    assert sorted(e.id for e in flat) == sorted(e.id for e in entries)
    assert len(flat) == len(entries)
    assert [e.set_number for e in summaries[0].sets] == [3, 1, 2]


def test_exact_string_keys_not_normalized():
    summaries = group_by_date([entry('2024-01-10'), entry('2024-1-10')])
    assert len(summaries) == 2


def test_entries_of_different_users_merge_on_same_date():
    summaries = group_by_date([entry('2024-03-01', user_id='a'), entry('2024-03-01', user_id='b')])
    assert len(summaries) == 1
    assert {e.user_id for e in summaries[0].sets} == {'a', 'b'}


def test_deterministic():
    entries = [entry('2024-01-10', 42.5, 8), entry('2024-01-09', 20, 12), entry('2024-01-10', 40, 8)]
    assert group_by_date(entries) == group_by_date(entries)


def test_float_volume_not_rounded():
    assert total_volume([entry('2024-01-01', 22.5, 3)]) == pytest.approx(67.5)


def test_volume_series_oldest_first():
    summaries = group_by_date([entry('2024-01-10', 10, 1), entry('2024-01-12', 30, 1), entry('2024-01-11', 20, 1)])
    dates, volumes = volume_series(summaries)
    assert dates == ['2024-01-10', '2024-01-11', '2024-01-12']
    assert volumes == [10, 20, 30]
