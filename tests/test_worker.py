import threading
import time

import redis

from gush import Job, Worker, Workflow, WorkflowRegistry

from tests.workflows import FetchA


def test_drain_runs_diamond_to_completion(client, drain):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)

    assert drain() == 3

    flow = client.find_workflow(workflow_id)
    assert flow.finished
    assert flow.find_job("Combine").output == ["a", "b"]


def test_outputs_flow_into_successor_params(client, drain):
    workflow_id = client.create_workflow("Fork", "s3://bucket")
    client.start_workflow(workflow_id)
    drain()

    flow = client.find_workflow(workflow_id)
    prepare = flow.find_job("Prepare")
    assert flow.find_job("FetchA").params == {prepare.name: {"prepared": "s3://bucket"}}


def test_failure_is_recorded_and_branch_halts(client, drain):
    workflow_id = client.create_workflow("FailingBranch")
    client.start_workflow(workflow_id)
    drain()

    flow = client.find_workflow(workflow_id)
    boom = flow.find_job("Boom")
    assert boom.failed and boom.finished
    assert boom.output == {"error": "boom", "error_type": "RuntimeError"}
    assert flow.find_job("Downstream").pending
    assert flow.find_job("Sibling").succeeded
    assert flow.status == "failed"
    assert client.queue.size() == 0


def test_execute_catches_job_errors(client, worker):
    workflow_id = client.create_workflow("FailingBranch")
    result = worker.execute(client.load_job(workflow_id, "Boom"))
    assert not result.success
    assert result.failure.error_type == "RuntimeError"


def test_store_errors_requeue_the_message(client, worker, monkeypatch):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)
    msg = client.queue.pop(timeout_s=1)

    def unavailable(_id):
        raise redis.ConnectionError("down")

    monkeypatch.setattr(client, "find_workflow", unavailable)
    worker.handle(msg)
    monkeypatch.undo()

    assert client.queue.size() == 2
    assert client.queue.pop(timeout_s=1) == msg
    assert client.find_workflow(workflow_id).find_job(msg.job_name, exact=True).enqueued


def test_message_for_destroyed_workflow_is_dropped(client, worker):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)
    client.destroy_workflow(workflow_id)

    assert worker.run_once(timeout_s=1)
    assert client.queue.size() == 1


def test_message_for_unknown_job_is_dropped(client, worker):
    workflow_id = client.create_workflow("Diamond")
    client.queue.push(workflow_id, "ghost")

    assert worker.run_once(timeout_s=1)
    assert client.queue.size() == 0


def test_redelivered_finished_job_is_not_run_again(client, worker, drain):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)
    drain()
    a = client.find_workflow(workflow_id).find_job("FetchA")

    result = worker.perform(workflow_id, a.name)

    assert result.success and result.output == "a"
    assert client.find_workflow(workflow_id).find_job("FetchA").finished_at == a.finished_at


def test_redelivered_running_job_runs_again(client, worker):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)
    msg = client.queue.pop(timeout_s=1)
    client.start_job(workflow_id, client.find_workflow(workflow_id).find_job(msg.job_name, exact=True))

    worker.handle(msg)

    job = client.find_workflow(workflow_id).find_job(msg.job_name, exact=True)
    assert job.succeeded


def test_malformed_queue_message_is_dropped(client, worker):
    client.redis.rpush(client.queue.key, "{not json")
    assert worker.run_once(timeout_s=1)
    assert client.queue.size() == 0


def test_empty_queue(worker):
    assert not worker.run_once(timeout_s=1)


def test_run_loop_until_stopped(client):
    worker = Worker(client, backoff=0)
    thread = threading.Thread(target=worker.run)
    thread.start()
    try:
        workflow_id = client.create_workflow("Diamond")
        client.start_workflow(workflow_id)
        deadline = time.monotonic() + 10
        while not client.find_workflow(workflow_id).finished and time.monotonic() < deadline:
            time.sleep(0.05)
        assert client.find_workflow(workflow_id).finished
    finally:
        worker.stop()
        thread.join(timeout=5)
    assert not thread.is_alive()


def test_stopped_worker_does_not_poll(client):
    worker = Worker(client)
    worker.stop()
    assert not worker.running
    worker.run()


def fail_first_call(monkeypatch, obj, attr):
    """Make obj.attr raise redis.ConnectionError once, then behave normally."""
    original = getattr(obj, attr)
    calls = []

    def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise redis.ConnectionError("pool timeout")
        return original(*args, **kwargs)

    monkeypatch.setattr(obj, attr, flaky)
    return calls


def test_store_error_while_finishing_retries_the_job(client, worker, monkeypatch):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)
    msg = client.queue.pop(timeout_s=1)
    calls = fail_first_call(monkeypatch, client, "finish_job")

    worker.handle(msg)
    assert client.find_workflow(workflow_id).find_job(msg.job_name, exact=True).running

    retry = client.queue.pop(timeout_s=1)
    assert retry == msg
    worker.handle(retry)

    assert len(calls) == 2
    assert client.find_workflow(workflow_id).find_job(msg.job_name, exact=True).succeeded


def test_store_error_during_cascade_is_resumed_on_redelivery(client, drain, monkeypatch):
    workflow_id = client.create_workflow("Fork")
    client.start_workflow(workflow_id)
    fail_first_call(monkeypatch, client, "_enqueue_if_ready")

    drain()

    flow = client.find_workflow(workflow_id)
    assert [(j.klass, j.phase) for j in flow.jobs] == [
        ("Prepare", "finished"),
        ("FetchA", "finished"),
        ("FetchB", "finished"),
    ]
    assert flow.finished


class Opaque(Job):
    def work(self):
        return object()


class Unstorable(Workflow):
    def configure(self):
        self.run(Opaque)
        self.run(FetchA, after=Opaque)


def test_unstorable_output_fails_the_job(client, worker):
    client.registry.register()(Unstorable)
    workflow_id = client.create_workflow("Unstorable")
    client.start_workflow(workflow_id)

    assert worker.run_once(timeout_s=1)

    flow = client.find_workflow(workflow_id)
    opaque = flow.find_job("Opaque")
    assert opaque.failed and opaque.finished
    assert opaque.output["error_type"] == "PydanticSerializationError"
    assert flow.find_job("FetchA").pending
    assert client.queue.size() == 0


def test_unexpected_error_drops_the_message_and_keeps_the_worker(client, worker, monkeypatch):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)

    def broken(_id):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(client, "find_workflow", broken)
    assert worker.run_once(timeout_s=1)
    assert client.queue.size() == 1


def test_workflow_type_missing_from_registry(client, worker):
    workflow_id = client.create_workflow("Diamond")
    client.start_workflow(workflow_id)
    client.registry = WorkflowRegistry()

    assert worker.run_once(timeout_s=1)
    assert client.queue.size() == 1


def test_run_loop_survives_unexpected_errors(worker, monkeypatch):
    calls = []

    def flaky(timeout_s=None):
        calls.append(timeout_s)
        if len(calls) == 1:
            raise RuntimeError("unexpected")
        worker.stop()
        return False

    monkeypatch.setattr(worker, "run_once", flaky)
    worker.run()

    assert len(calls) == 2
