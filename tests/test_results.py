import uuid
from datetime import datetime, timezone

import pytest

from runwatch import annotation
from runwatch.convert import LOG_RECORD_TYPE, RecordStatus, to_proto
from runwatch.objects import Condition, OwnerReference, PipelineRun, TaskRun
from runwatch.results import (
    Client,
    NotFoundError,
    Record,
    RecordSummary,
    Result,
    ResultsService,
    default_name,
    format_log_name,
    format_record_name,
    format_result_name,
    is_top_level_record,
    log_record_name,
    parent_name,
    parse_log_name,
    parse_record_name,
    record_name,
    result_name,
)


def _client() -> Client:
    return Client(ResultsService(), None)


def _taskrun(**kwargs):
    base = dict(api_version="tekton.dev/v1beta1", kind="TaskRun", name="taskrun",
                namespace="test", uid="taskrun-id")
    base.update(kwargs)
    return TaskRun(**base)


def _pipelinerun(**kwargs):
    base = dict(api_version="tekton.dev/v1beta1", kind="PipelineRun", name="pipelinerun",
                namespace="test", uid="pipelinerun-id")
    base.update(kwargs)
    return PipelineRun(**base)


def test_name_formatting():
    assert format_result_name("ns", "r") == "ns/results/r"
    assert format_record_name("ns/results/r", "x") == "ns/results/r/records/x"
    assert format_log_name("ns/results/r", "x") == "ns/results/r/logs/x"


def test_parse_record_name_round_trip():
    name = format_record_name(format_result_name("foo", "bar"), "baz")
    assert parse_record_name(name) == ("foo", "bar", "baz")


def test_parse_log_name_round_trip():
    name = format_log_name(format_result_name("foo", "bar"), "baz")
    assert parse_log_name(name) == ("foo", "bar", "baz")


@pytest.mark.parametrize("name", ["", "foo/results/bar", "foo/results/bar/logs/baz", "Foo/results/b/records/c"])
def test_parse_record_name_invalid(name):
    with pytest.raises(ValueError):
        parse_record_name(name)


def test_parse_log_name_invalid():
    with pytest.raises(ValueError):
        parse_log_name("foo/results/bar/records/baz")


@pytest.mark.parametrize("obj", [
    _taskrun(name="name", uid="id"),
    _pipelinerun(name="name", uid="id"),
])
def test_default_name(obj):
    assert default_name(obj) == "id"


_OWNER = [OwnerReference(kind="PipelineRun", uid="pipelinerun")]


@pytest.mark.parametrize("changes, want", [
    ({}, "test/results/id"),
    ({"owner_references": _OWNER}, "test/results/pipelinerun"),
    ({"owner_references": _OWNER,
      "labels": {"triggers.tekton.dev/triggers-eventid": "trigger"}}, "test/results/trigger"),
    ({"owner_references": _OWNER,
      "labels": {"triggers.tekton.dev/triggers-eventid": "trigger"},
      "annotations": {annotation.RESULT: "result"}}, "result"),
])
def test_result_name(changes, want):
    obj = _taskrun(name="object", uid="id", **changes)
    assert result_name(obj) == want


def test_result_name_owner_kind_case_insensitive():
    obj = _taskrun(uid="id", owner_references=[OwnerReference(kind="pipelinerun", uid="pr")])
    assert result_name(obj) == "test/results/pr"


@pytest.mark.parametrize("obj, want", [
    (TaskRun(uid="uid"), "foo/results/bar/records/uid"),
    (TaskRun(uid="uid", annotations={annotation.RECORD: "foo/results/bar/records/baz"}),
     "foo/results/bar/records/baz"),
    (TaskRun(uid="uid", annotations={annotation.RECORD: "foo/results/bar/records/baz"},
             owner_references=[OwnerReference(api_version="tekton.dev/v1beta1",
                                              kind="PipelineRun", controller=True)]),
     "foo/results/bar/records/uid"),
])
def test_record_name(obj, want):
    assert record_name("foo/results/bar", obj) == want


@pytest.mark.parametrize("obj, want", [
    (TaskRun(namespace="dev"), "dev"),
    (TaskRun(namespace="dev", annotations={annotation.RESULT: "foo/results/bar"}), "foo"),
])
def test_parent_name(obj, want):
    assert parent_name(obj) == want


def test_is_top_level_record():
    assert is_top_level_record(TaskRun()) is True
    assert is_top_level_record(TaskRun(owner_references=[OwnerReference(uid="x")])) is False


@pytest.mark.parametrize("obj, type_text", [
    (_taskrun(), "tekton.dev/v1beta1.TaskRun"),
    (_pipelinerun(), "tekton.dev/v1beta1.PipelineRun"),
])
def test_ensure_result(obj, type_text):
    client = _client()
    name = f"test/results/{obj.uid}"
    with pytest.raises(NotFoundError):
        client.results_service.get_result(name)

    created = client.ensure_result(obj)
    assert created.name == name
    assert created.summary == RecordSummary(
        record=f"{name}/records/{obj.uid}", type=type_text
    )
    assert created.uid

    fetched = client.ensure_result(obj)
    assert fetched == created


def test_ensure_result_record_summary_update():
    client = _client()
    pr = PipelineRun(namespace="default", uid="1")
    tr = TaskRun(
        namespace="default",
        uid="2",
        owner_references=[OwnerReference(api_version="tekton.dev/v1beta1", kind="PipelineRun",
                                         uid="1", controller=True)],
    )

    got = client.ensure_result(tr)
    assert got.name == "default/results/1"
    assert got.summary is None

    got = client.ensure_result(pr)
    assert got.name == "default/results/1"
    assert got.summary == RecordSummary(
        record="default/results/1/records/1",
        type="tekton.dev/v1beta1.PipelineRun",
    )


def test_ensure_result_summary_from_conditions():
    client = _client()
    finished = datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    obj = _taskrun(conditions=[
        Condition(type="Succeeded", status="True", reason="Succeeded", last_transition_time=finished),
    ])
    got = client.ensure_result(obj)
    assert got.summary.status == RecordStatus.SUCCESS
    assert got.summary.end_time == finished
    assert got.summary.start_time is None


def test_ensure_result_false_condition_has_no_end_time():
    client = _client()
    obj = _taskrun(conditions=[
        Condition(type="Succeeded", status="False", reason="Failed",
                  last_transition_time=datetime(2023, 1, 1, tzinfo=timezone.utc)),
    ])
    got = client.ensure_result(obj)
    assert got.summary.status == RecordStatus.FAILURE
    assert got.summary.end_time is None


@pytest.mark.parametrize("obj, key", [
    (_taskrun(generation=1), "taskResults"),
    (_pipelinerun(generation=1), "pipelineResults"),
])
def test_upsert_record(obj, key):
    client = _client()
    obj.status_fields = {key: [{"name": "result1", "value": "value1"}]}
    result = client.ensure_result(obj)
    name = f"{result.name}/records/{obj.uid}"
    with pytest.raises(NotFoundError):
        client.results_service.get_record(name)

    record = client.upsert_record(result.name, obj)
    assert record.name == name
    assert record.data == to_proto(obj)
    stored = client.results_service.get_record(name)
    assert stored.name == name
    assert stored.data == to_proto(obj)

    same = client.upsert_record(result.name, obj)
    assert same == record

    updated = _taskrun(generation=1) if isinstance(obj, TaskRun) else _pipelinerun(generation=1)
    updated.status_fields = {key: [{"name": "result1", "value": "value1-updated"}]}
    got = client.upsert_record(result.name, updated)
    assert got.data == to_proto(updated)
    assert got.data != to_proto(obj)
    assert got.etag != record.etag
    assert got.uid == record.uid


@pytest.mark.parametrize("obj", [_taskrun(), _pipelinerun()])
def test_put(obj):
    client = _client()
    for _ in ("create", "update"):
        result, record = client.put(obj)
        assert result.name == f"test/results/{obj.uid}"
        assert record.name == f"test/results/{obj.uid}/records/{obj.uid}"

    assert client.results_service.get_result(f"test/results/{obj.uid}").name == f"test/results/{obj.uid}"
    stored = client.results_service.get_record(f"test/results/{obj.uid}/records/{obj.uid}")
    assert stored.data == to_proto(obj)


@pytest.mark.parametrize("obj", [_taskrun(), _pipelinerun()])
def test_put_log(obj):
    client = _client()
    first = client.put_log(obj)
    second = client.put_log(obj)
    assert second == first

    res = client.results_service.get_result(f"test/results/{obj.uid}")
    name = log_record_name(res, obj)
    stored = client.results_service.get_record(name)
    assert stored.name == first.name
    assert stored.data.type == LOG_RECORD_TYPE


def test_get_log_record_none_until_put():
    client = _client()
    obj = _taskrun()
    assert client.get_log_record(obj) is None
    created = client.put_log(obj)
    assert client.get_log_record(obj) == created


def test_log_record_name_from_annotation():
    result = Result(name="ns/results/r", uid=str(uuid.uuid4()))
    obj = TaskRun(uid="x", annotations={annotation.LOG: "ns/results/r/logs/abc"})
    assert log_record_name(result, obj) == "ns/results/r/records/abc"


def test_log_record_name_generated_is_deterministic_md5_uuid():
    result = Result(name="ns/results/r", uid=str(uuid.uuid4()))
    obj = TaskRun(uid="x", annotations={annotation.LOG: "not a log name"})
    name = log_record_name(result, obj)
    assert name == log_record_name(result, TaskRun(uid="x"))
    _, _, last = parse_record_name(name)
    assert uuid.UUID(last).version == 3
    assert log_record_name(result, TaskRun(uid="y")) != name


def test_log_record_name_invalid_result_uid():
    assert log_record_name(Result(name="ns/results/r", uid="bad"), TaskRun(uid="x")) == ""


def test_service_create_record_needs_result():
    service = ResultsService()
    with pytest.raises(NotFoundError):
        service.create_record("ns/results/r", Record(name="ns/results/r/records/a"))


def test_service_update_record_etag_mismatch():
    service = ResultsService()
    service.create_result("ns", Result(name="ns/results/r"))
    record = service.create_record("ns/results/r", Record(name="ns/results/r/records/a"))
    with pytest.raises(ValueError):
        service.update_record(record, etag="stale")


def test_service_create_result_duplicate_and_wrong_parent():
    service = ResultsService()
    service.create_result("ns", Result(name="ns/results/r"))
    with pytest.raises(ValueError):
        service.create_result("ns", Result(name="ns/results/r"))
    with pytest.raises(ValueError):
        service.create_result("other", Result(name="ns/results/s"))


def test_service_update_missing_result():
    with pytest.raises(NotFoundError):
        ResultsService().update_result("ns/results/r", Result(name="ns/results/r"))