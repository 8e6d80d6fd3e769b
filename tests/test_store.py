import json
import pytest
from gymlog.models import EntryChanges, NewEntry
from gymlog.store import LocalEntryStore, StoreError


@pytest.fixture()
def data_file(tmp_path):
    return str(tmp_path / "data.json")


@pytest.fixture()
def store(data_file):
    return LocalEntryStore(data_file)


def new_entry(user_id='u1', date='2024-01-10', exercise='Bench', weight=60.0, reps=8, set_number=1):
    return NewEntry(user_id=user_id, date=date, exercise=exercise, weight=weight, reps=reps, set_number=set_number)


@pytest.mark.asyncio
async def test_fetch_empty_when_no_file(store):
    assert await store.fetch_entries('u1') == []


@pytest.mark.asyncio
async def test_create_persists_with_generated_id(store, data_file):
    await store.create_entry(new_entry())
    with open(data_file, 'r', encoding='utf-8') as f:
        rows = json.load(f)['entries']
    assert len(rows) == 1
    assert rows[0]['id']
    assert rows[0]['user_id'] == 'u1'
    assert rows[0]['set_number'] == 1


@pytest.mark.asyncio
async def test_fetch_scoped_to_user_and_ordered_by_date_desc(store):
    await store.create_entry(new_entry(date='2024-01-10'))
    await store.create_entry(new_entry(date='2024-01-12'))
    await store.create_entry(new_entry(user_id='other', date='2024-01-15'))
    await store.create_entry(new_entry(date='2024-01-11'))
    entries = await store.fetch_entries('u1')
    assert [e.date for e in entries] == ['2024-01-12', '2024-01-11', '2024-01-10']
    assert all(e.user_id == 'u1' for e in entries)


@pytest.mark.asyncio
async def test_fetch_single_day_ordered_by_set_number(store):
    await store.create_entry(new_entry(set_number=3))
    await store.create_entry(new_entry(set_number=1))
    await store.create_entry(new_entry(date='2024-01-11', set_number=2))
    await store.create_entry(new_entry(set_number=2))
    entries = await store.fetch_entries('u1', '2024-01-10')
    assert [e.set_number for e in entries] == [1, 2, 3]


@pytest.mark.asyncio
async def test_update_requires_matching_owner(store):
    await store.create_entry(new_entry())
    (entry,) = await store.fetch_entries('u1')
    changes = EntryChanges(exercise='Squat', weight=100.0, reps=5, set_number=2)
    with pytest.raises(StoreError):
        await store.update_entry(entry.id, 'intruder', changes)
    await store.update_entry(entry.id, 'u1', changes)
    (updated,) = await store.fetch_entries('u1')
    assert (updated.exercise, updated.weight, updated.reps, updated.set_number) == ('Squat', 100.0, 5, 2)
    assert updated.date == '2024-01-10'


@pytest.mark.asyncio
async def test_update_unknown_id_fails(store):
    with pytest.raises(StoreError):
        await store.update_entry('missing', 'u1', EntryChanges('Row', 40.0, 10, 1))


@pytest.mark.asyncio
async def test_delete_requires_matching_owner(store):
    await store.create_entry(new_entry())
    (entry,) = await store.fetch_entries('u1')
    with pytest.raises(StoreError):
        await store.delete_entry(entry.id, 'intruder')
    await store.delete_entry(entry.id, 'u1')
    assert await store.fetch_entries('u1') == []
    with pytest.raises(StoreError):
        await store.delete_entry(entry.id, 'u1')


@pytest.mark.asyncio
async def test_corrupt_file_raises_store_error(store, data_file):
    with open(data_file, 'w', encoding='utf-8') as f:
        f.write('{not json')
    with pytest.raises(StoreError):
        await store.fetch_entries('u1')
