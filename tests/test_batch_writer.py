import pytest

from conftest import RecordingWriteClient, track_uri
from core.batch_writer import BatchJob, BatchWriter
from core.errors import Cancelled, CreateFailed, NoData, PartialFailure


def _items(count):
    return [track_uri(n) for n in range(count)]


def test_large_job_is_split_into_parts_and_chunks(make_session):
    client = RecordingWriteClient()
    created = []
    items = _items(25000)
    job = BatchJob(name="Everything", description="All songs.", items=items)

    playlist_ids = BatchWriter(make_session(client, on_created=created.append)).create_and_populate(job)

    assert playlist_ids == ["pl1", "pl2", "pl3"]
    assert created == ["pl1", "pl2", "pl3"]
    assert [p.name for p in client.created] == ["Everything - Part 1", "Everything - Part 2", "Everything - Part 3"]
    assert all(len(uris) <= 100 for _, uris in client.appends)
    assert sum(len(uris) for _, uris in client.appends) == 25000
    # Order is preserved across chunks and parts
    assert [uri for _, uris in client.appends for uri in uris] == items
    per_playlist = {}
    for playlist_id, uris in client.appends:
        per_playlist[playlist_id] = per_playlist.get(playlist_id, 0) + len(uris)
    assert per_playlist == {"pl1": 10000, "pl2": 10000, "pl3": 5000}


def test_each_part_is_created_before_it_is_filled(make_session):
    client = RecordingWriteClient()
    job = BatchJob(name="Mix", description="", items=_items(25), chunk_size=10, collection_size_limit=20)

    BatchWriter(make_session(client)).create_and_populate(job)

    assert client.calls == [
        ("create", "Mix - Part 1"), ("append", "pl1", 10), ("append", "pl1", 10),
        ("create", "Mix - Part 2"), ("append", "pl2", 5),
    ]


def test_single_part_keeps_plain_name(make_session):
    client = RecordingWriteClient()
    job = BatchJob(name="Rainy Day", description="Soft songs.", items=_items(150))

    BatchWriter(make_session(client)).create_and_populate(job)

    assert [p.name for p in client.created] == ["Rainy Day"]
    assert [len(uris) for _, uris in client.appends] == [100, 50]


def test_part_description_mentions_position():
    job = BatchJob(name="All", description="All unique songs.", items=_items(30), chunk_size=10, collection_size_limit=10)
    assert BatchWriter.part_description(job, 2) == "Part 2 of 3. All unique songs."


def test_empty_job_fails_before_any_remote_call(make_session):
    client = RecordingWriteClient()

    with pytest.raises(NoData):
        BatchWriter(make_session(client)).create_and_populate(BatchJob(name="Empty", description="", items=[]))
    assert client.calls == []


def test_progress_counts_written_items(make_session):
    client = RecordingWriteClient()
    progress = []
    job = BatchJob(name="Mix", description="", items=_items(250))

    BatchWriter(make_session(client)).create_and_populate(job, on_progress=lambda done, total: progress.append((done, total)))

    assert progress == [(100, 250), (200, 250), (250, 250)]


def test_failed_append_reports_partial_failure(make_session):
    client = RecordingWriteClient(fail_append_at=2)
    job = BatchJob(name="Mix", description="", items=_items(300))

    with pytest.raises(PartialFailure) as exc_info:
        BatchWriter(make_session(client)).create_and_populate(job)

    assert exc_info.value.created_ids == ["pl1"]
    assert "100 of 300" in exc_info.value.user_message
    # No rollback and no further writes
    assert client.calls[-1] == ("append", "pl1", 100)
    assert len(client.appends) == 1


def test_failed_create_keeps_earlier_parts(make_session):
    client = RecordingWriteClient(fail_create_at=2)
    job = BatchJob(name="Huge", description="", items=_items(15000))

    with pytest.raises(CreateFailed) as exc_info:
        BatchWriter(make_session(client)).create_and_populate(job)

    assert exc_info.value.created_ids == ["pl1"]
    assert sum(len(uris) for _, uris in client.appends) == 10000


def test_cancel_mid_batch_stops_further_calls(make_session, token):
    def cancel_on_third(append_count):
        if append_count == 3:
            token.cancel()

    client = RecordingWriteClient(on_append=cancel_on_third)
    created = []
    job = BatchJob(name="Mix", description="", items=_items(1000))

    with pytest.raises(Cancelled):
        BatchWriter(make_session(client, on_created=created.append)).create_and_populate(job)

    assert len(client.calls) == 4
    assert created == ["pl1"]


@pytest.mark.parametrize("kwargs", [
    {"chunk_size": 0},
    {"chunk_size": 101},
    {"collection_size_limit": 10001},
    {"chunk_size": 50, "collection_size_limit": 10},
])
def test_batch_job_rejects_limits_beyond_remote_ceilings(kwargs):
    with pytest.raises(ValueError):
        BatchJob(name="x", description="", items=_items(5), **kwargs)
